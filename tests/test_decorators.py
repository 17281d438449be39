"""
Tests for centralized error handling decorators.
"""
import pytest
from unittest.mock import MagicMock
from mimicry.utils.decorators import suppress_exceptions, log_errors


class TestSuppressExceptions:
    """Test suppress_exceptions decorator."""

    def test_suppress_exception_returns_none(self):
        """Exceptions are suppressed and None is returned by default."""
        mock_logger = MagicMock()

        @suppress_exceptions(mock_logger, "Deferred listener failed")
        def failing_listener():
            raise ValueError("listener error")

        assert failing_listener() is None
        mock_logger.error.assert_called_once()
        assert "Deferred listener failed" in mock_logger.error.call_args[0][0]

    def test_suppress_exception_returns_custom_value(self):
        mock_logger = MagicMock()

        @suppress_exceptions(mock_logger, "Coercion failed", return_value=500)
        def coerce():
            raise ValueError("bad int")

        assert coerce() == 500

    def test_suppress_exception_logs_with_custom_level(self):
        mock_logger = MagicMock()

        @suppress_exceptions(mock_logger, "Coercion failed", log_level="warning")
        def coerce():
            raise ValueError("bad int")

        coerce()
        mock_logger.warning.assert_called_once()
        mock_logger.error.assert_not_called()

    def test_no_exception_returns_normal_value(self):
        mock_logger = MagicMock()

        @suppress_exceptions(mock_logger)
        def working():
            return "success"

        assert working() == "success"
        mock_logger.error.assert_not_called()


class TestLogErrors:
    """Test log_errors decorator."""

    def test_logs_and_reraises(self):
        mock_logger = MagicMock()

        @log_errors(mock_logger, "Subscribing failed in {func_name}")
        def subscribe():
            raise KeyError("no key")

        with pytest.raises(KeyError):
            subscribe()

        message = mock_logger.error.call_args[0][0]
        assert "Subscribing failed in subscribe" in message

    def test_no_reraise_returns_none(self):
        mock_logger = MagicMock()

        @log_errors(mock_logger, reraise=False)
        def subscribe():
            raise RuntimeError("boom")

        assert subscribe() is None
        mock_logger.error.assert_called_once()

    def test_preserves_metadata(self):
        @log_errors()
        def documented():
            """Docstring."""
            return 1

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."
        assert documented() == 1
