"""Unit tests for config validation and settings."""
import os
from unittest.mock import patch

import pytest

from processor.config import (
    DEFAULT_USER_AGENT,
    Settings,
    SourceConfigError,
    validate_config_patterns,
    validate_source_config,
)


class TestValidateSourceConfig:
    """Test cases for validate_source_config."""

    def test_returns_input_unchanged(self):
        """Test that a valid config is returned as the same object."""
        config = {'kennelTag': 'NYCH3', 'kennelSlugs': ['nych3'], 'columns': {'date': 0}}

        result = validate_source_config(
            config, 'TestAdapter',
            {'kennelTag': 'string', 'kennelSlugs': 'array', 'columns': 'object'},
        )

        assert result is config

    def test_none_config(self):
        """Test the message for a missing config."""
        with pytest.raises(SourceConfigError) as exc_info:
            validate_source_config(None, 'MeetupAdapter', {'groupUrlname': 'string'})

        assert str(exc_info.value) == 'MeetupAdapter: source.config is None - expected a config object'

    def test_list_config(self):
        """Test the message for a config that is not an object."""
        with pytest.raises(SourceConfigError) as exc_info:
            validate_source_config([], 'MeetupAdapter', {})

        assert str(exc_info.value) == 'MeetupAdapter: source.config must be an object, got list'

    def test_missing_field(self):
        """Test the message for a missing required field."""
        with pytest.raises(SourceConfigError) as exc_info:
            validate_source_config({}, 'RssFeedAdapter', {'kennelTag': 'string'})

        assert str(exc_info.value) == 'RssFeedAdapter: missing required config field "kennelTag"'

    def test_wrong_scalar_type(self):
        """Test the message for a field of the wrong type."""
        with pytest.raises(SourceConfigError) as exc_info:
            validate_source_config({'kennelTag': 5}, 'RssFeedAdapter', {'kennelTag': 'string'})

        assert str(exc_info.value) == 'RssFeedAdapter: config.kennelTag must be a string, got int'

    def test_wrong_container_types(self):
        """Test array and object shape checks."""
        with pytest.raises(SourceConfigError) as exc_info:
            validate_source_config({'kennelSlugs': 'nych3'}, 'HashRegoAdapter', {'kennelSlugs': 'array'})
        assert 'config.kennelSlugs must be an array, got string' in str(exc_info.value)

        with pytest.raises(SourceConfigError) as exc_info:
            validate_source_config({'columns': [1, 2]}, 'GoogleSheetsAdapter', {'columns': 'object'})
        assert 'config.columns must be an object, got array' in str(exc_info.value)

    def test_is_value_error(self):
        """Test that config errors can be caught as ValueError."""
        with pytest.raises(ValueError):
            validate_source_config(None, 'X', {})


class TestValidateConfigPatterns:
    """Test cases for validate_config_patterns."""

    def test_valid_config(self):
        """Test that a usable config has no problems."""
        config = {'kennelPatterns': [['^NYC', 'NYCH3']], 'skipPatterns': ['cancel']}

        assert validate_config_patterns('ICAL_FEED', config) == []

    def test_bad_regexes_reported(self):
        """Test that invalid regexes and malformed pairs are reported."""
        config = {'kennelPatterns': [['(unclosed', 'X'], ['only-one']], 'skipPatterns': ['[']}

        problems = validate_config_patterns('ICAL_FEED', config)

        assert len(problems) == 3
        assert problems[0].startswith('kennelPatterns[0]: invalid regex')
        assert problems[1] == 'kennelPatterns[1]: must be a [regex, tag] pair'
        assert problems[2].startswith('skipPatterns[0]: invalid regex')

    def test_sheets_requirements(self):
        """Test Google Sheets specific checks."""
        problems = validate_config_patterns('GOOGLE_SHEETS', {'kennelTagRules': {}})

        assert 'Google Sheets config requires sheetId' in problems
        assert 'Google Sheets config requires columns mapping' in problems
        assert 'Google Sheets config requires kennelTagRules.default' in problems

    def test_hashrego_requires_slugs(self):
        """Test Hash Rego specific checks."""
        assert validate_config_patterns('HASHREGO', {'kennelSlugs': []}) == [
            'Hash Rego config requires at least one kennelSlug'
        ]


class TestSettings:
    """Test cases for Settings.from_env."""

    def test_defaults(self):
        """Test defaults when nothing is set."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings.from_env()

        assert settings.log_level == 'INFO'
        assert settings.timeout_seconds == 30
        assert settings.scrape_days == 90
        assert settings.google_api_key is None
        assert settings.user_agent == DEFAULT_USER_AGENT

    def test_from_environment(self):
        """Test reading every variable."""
        env_vars = {
            'LOG_LEVEL': 'DEBUG',
            'TIMEOUT_SECONDS': '10',
            'SCRAPE_DAYS': '30',
            'GOOGLE_API_KEY': 'test-key',
            'SCRAPER_USER_AGENT': 'TestAgent/1.0',
        }
        with patch.dict(os.environ, env_vars, clear=True):
            settings = Settings.from_env()

        assert settings.log_level == 'DEBUG'
        assert settings.timeout_seconds == 10
        assert settings.scrape_days == 30
        assert settings.google_api_key == 'test-key'
        assert settings.user_agent == 'TestAgent/1.0'
