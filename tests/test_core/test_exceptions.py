"""Tests for hemocount.core.exceptions."""

import pytest

from hemocount.core.exceptions import (
    ConfigError,
    HemocountError,
    ImageReadError,
    InvalidInputError,
)


class TestExceptionHierarchy:
    def test_all_inherit_from_hemocount_error(self):
        for exc_cls in (InvalidInputError, ConfigError, ImageReadError):
            assert issubclass(exc_cls, HemocountError)

    def test_invalid_input_is_value_error(self):
        with pytest.raises(ValueError):
            raise InvalidInputError("bad")

    def test_catch_all_with_base(self):
        with pytest.raises(HemocountError):
            raise ConfigError("/tmp/settings.yaml", "not valid YAML")

    def test_invalid_input_with_field(self):
        exc = InvalidInputError("must be > 0, got -1", field="px_per_micron")
        assert str(exc) == "Invalid px_per_micron: must be > 0, got -1"
        assert exc.field == "px_per_micron"

    def test_invalid_input_default_message(self):
        assert str(InvalidInputError()) == "Invalid input"

    def test_config_error_message(self):
        exc = ConfigError("/some/path.yaml", "file not found")
        assert "/some/path.yaml" in str(exc)
        assert "file not found" in str(exc)
        assert exc.path == "/some/path.yaml"
        assert exc.reason == "file not found"

    def test_config_error_reason_only(self):
        assert str(ConfigError(reason="expected a mapping")) == "expected a mapping"

    def test_image_read_error_message(self):
        exc = ImageReadError("cells.png", "truncated")
        assert "cells.png" in str(exc)
        assert "truncated" in str(exc)
        assert exc.path == "cells.png"
