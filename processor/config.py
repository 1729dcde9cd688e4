"""Source config validation and environment settings."""
import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

DEFAULT_USER_AGENT = 'Mozilla/5.0 (compatible; HashRunIngest/1.0)'

_TYPE_NAMES = {
    dict: 'object',
    list: 'array',
    str: 'string',
    bool: 'boolean',
}


class SourceConfigError(ValueError):
    """Source configuration is absent or does not have the declared shape."""


@dataclass
class Settings:
    """Runtime settings read from environment variables."""
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    scrape_days: int = 90
    google_api_key: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    @classmethod
    def from_env(cls) -> 'Settings':
        return cls(
            log_level=os.environ.get('LOG_LEVEL', 'INFO'),
            timeout_seconds=int(os.environ.get('TIMEOUT_SECONDS', '30')),
            scrape_days=int(os.environ.get('SCRAPE_DAYS', '90')),
            google_api_key=os.environ.get('GOOGLE_API_KEY') or None,
            user_agent=os.environ.get('SCRAPER_USER_AGENT', DEFAULT_USER_AGENT),
        )


def _type_name(value: Any) -> str:
    if value is None:
        return 'None'
    return _TYPE_NAMES.get(type(value), type(value).__name__)


def validate_source_config(raw: Any, adapter_name: str,
                           required_fields: Dict[str, str]) -> Dict[str, Any]:
    """
    Check a source config against a declared minimal shape.

    Args:
        raw: The source's config value
        adapter_name: Name used as the message prefix
        required_fields: Field name -> "string", "array" or "object"

    Returns:
        The input config, unchanged

    Raises:
        SourceConfigError: Naming the missing or mistyped field
    """
    if raw is None:
        raise SourceConfigError(
            f"{adapter_name}: source.config is None - expected a config object"
        )
    if not isinstance(raw, dict):
        raise SourceConfigError(
            f"{adapter_name}: source.config must be an object, got {_type_name(raw)}"
        )

    for field_name, expected in required_fields.items():
        value = raw.get(field_name)
        if value is None:
            raise SourceConfigError(
                f'{adapter_name}: missing required config field "{field_name}"'
            )
        if expected == 'array' and not isinstance(value, list):
            raise SourceConfigError(
                f"{adapter_name}: config.{field_name} must be an array, got {_type_name(value)}"
            )
        if expected == 'object' and not isinstance(value, dict):
            raise SourceConfigError(
                f"{adapter_name}: config.{field_name} must be an object, got {_type_name(value)}"
            )
        if expected == 'string' and not isinstance(value, str):
            raise SourceConfigError(
                f"{adapter_name}: config.{field_name} must be a string, got {_type_name(value)}"
            )

    return raw


def _check_regex(pattern: str, label: str, problems: List[str]) -> None:
    try:
        re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        problems.append(f'{label}: invalid regex "{pattern}" - {e}')


def validate_config_patterns(source_type: str, config: Any) -> List[str]:
    """
    Operator-facing checks on a config before it is saved.

    Args:
        source_type: Source type value (e.g. "GOOGLE_SHEETS")
        config: Config to check

    Returns:
        Human-readable problems; empty when the config looks usable
    """
    if not isinstance(config, dict):
        return []
    problems: List[str] = []
    source_type = getattr(source_type, 'value', source_type)

    patterns = config.get('kennelPatterns')
    if patterns is not None:
        if not isinstance(patterns, list):
            problems.append('kennelPatterns must be an array of [regex, tag] pairs')
        else:
            for i, pair in enumerate(patterns):
                if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                    problems.append(f'kennelPatterns[{i}]: must be a [regex, tag] pair')
                    continue
                pattern, tag = pair
                if not isinstance(pattern, str) or not isinstance(tag, str):
                    problems.append(f'kennelPatterns[{i}]: both regex and tag must be strings')
                    continue
                if not tag.strip():
                    problems.append(f'kennelPatterns[{i}]: kennel tag cannot be empty')
                _check_regex(pattern, f'kennelPatterns[{i}]', problems)

    skip_patterns = config.get('skipPatterns')
    if skip_patterns is not None:
        if not isinstance(skip_patterns, list):
            problems.append('skipPatterns must be an array of regex strings')
        else:
            for i, pattern in enumerate(skip_patterns):
                if not isinstance(pattern, str):
                    problems.append(f'skipPatterns[{i}]: must be a string')
                    continue
                _check_regex(pattern, f'skipPatterns[{i}]', problems)

    if source_type == 'GOOGLE_SHEETS':
        if not isinstance(config.get('sheetId'), str) or not config.get('sheetId'):
            problems.append('Google Sheets config requires sheetId')
        if not isinstance(config.get('columns'), dict):
            problems.append('Google Sheets config requires columns mapping')
        rules = config.get('kennelTagRules')
        if not isinstance(rules, dict) or not rules.get('default'):
            problems.append('Google Sheets config requires kennelTagRules.default')

    if source_type == 'HASHREGO':
        slugs = config.get('kennelSlugs')
        if not isinstance(slugs, list) or len(slugs) == 0:
            problems.append('Hash Rego config requires at least one kennelSlug')

    return problems
