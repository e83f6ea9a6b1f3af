import re
from collections.abc import Iterable, Sequence

from ha_light_bridge.models.schemas import HAState
from ha_light_bridge.services.area_extraction import is_supported_entity


def _pattern_matches(pattern: str, entity_id: str) -> bool:
    try:
        return re.search(pattern, entity_id) is not None
    except re.error:
        return False


def is_blacklisted(entity_id: str, blacklist: Sequence[str]) -> bool:
    for pattern in blacklist:
        if pattern == entity_id or _pattern_matches(pattern, entity_id):
            return True
    return False


def is_whitelisted(entity_id: str, whitelist: Sequence[str]) -> bool:
    return any(_pattern_matches(pattern, entity_id) for pattern in whitelist)


def filter_entities(
    entities: Iterable[HAState],
    blacklist: Sequence[str],
    whitelist: Sequence[str],
) -> list[HAState]:
    """Drop blacklisted entities; with a non-empty whitelist keep only matching ones."""
    result: list[HAState] = []
    for entity in entities:
        if is_blacklisted(entity.entity_id, blacklist):
            continue
        if whitelist and not is_whitelisted(entity.entity_id, whitelist):
            continue
        result.append(entity)
    return result


def filter_supported_domains(states: Iterable[HAState]) -> list[HAState]:
    return [state for state in states if is_supported_entity(state.entity_id)]
