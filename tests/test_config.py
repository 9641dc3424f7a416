"""
Unit tests for environment settings and logging setup.
"""
import io
import logging

from nft_monitor import logging_config
from nft_monitor.config.monitor_config import (
    DEFAULT_RPC_URL,
    load_settings,
    split_addresses,
)

from fakes import BAYC, MAYC


class TestLoadSettings:
    """Environment variables"""

    def test_empty_environment_uses_defaults(self):
        settings = load_settings({})
        assert settings.rpc_url == DEFAULT_RPC_URL
        assert settings.contract_addresses == []
        assert settings.wallet_address is None

    def test_websocket_url_is_the_rpc_fallback(self):
        assert load_settings({'WEB3_WEBSOCKET_URL': "wss://ws.example"}).rpc_url == "wss://ws.example"
        env = {'RPC_URL': "wss://rpc.example", 'WEB3_WEBSOCKET_URL': "wss://ws.example"}
        assert load_settings(env).rpc_url == "wss://rpc.example"

    def test_switches(self):
        settings = load_settings({'FETCH_METADATA': "true", 'REPORT_JSON': "1"})
        assert settings.fetch_metadata
        assert settings.report_json
        assert not load_settings({'FETCH_METADATA': "0"}).fetch_metadata

    def test_blank_wallet_is_none(self):
        assert load_settings({'WALLET_ADDRESS': "   "}).wallet_address is None

    def test_to_dict(self):
        settings = load_settings({'TOKEN_ADDRESSES': BAYC})
        assert settings.to_dict()['contract_addresses'] == [BAYC]

    def test_split_addresses_drops_blanks(self):
        assert split_addresses(f" {BAYC} ,, {MAYC},") == [BAYC, MAYC]
        assert split_addresses(None) == []


class TestSetupLogging:
    """Process logging setup"""

    def test_sets_app_logger_level(self):
        root = logging.getLogger()
        saved_handlers, saved_level = list(root.handlers), root.level
        try:
            app_logger = logging_config.setup_logging(logging.DEBUG, debug=False)
            assert app_logger.name == "nft_monitor"
            assert app_logger.level == logging.DEBUG
            assert logging.getLogger("web3").level == logging.WARNING
            assert any(isinstance(h.formatter, logging_config.ConciseFormatter) for h in root.handlers)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
            logging.getLogger("nft_monitor").setLevel(logging.NOTSET)

    def test_debug_file_handler_is_added_once(self, tmp_path, monkeypatch):
        monkeypatch.setattr(logging_config, 'DEBUG_LOG_PATH', tmp_path / "monitor_debug.log")
        app_logger = logging.getLogger("nft_monitor")
        try:
            logging_config.setup_debug_file_logging()
            logging_config.setup_debug_file_logging()
            handlers = [h for h in app_logger.handlers if h.name == 'monitor_debug_file']
            assert len(handlers) == 1
            assert (tmp_path / "monitor_debug.log").exists()
        finally:
            for handler in [h for h in app_logger.handlers if h.name == 'monitor_debug_file']:
                app_logger.removeHandler(handler)
                handler.close()
            app_logger.setLevel(logging.NOTSET)


def make_record(level, message="Transfer seen"):
    return logging.LogRecord("nft_monitor.services", level, __file__, 10, message, None, None)


class TestFormatters:
    """Console and debug file formats"""

    def test_plain_output_has_no_escape_codes(self):
        formatter = logging_config.ConciseFormatter(use_color=False)
        assert formatter.format(make_record(logging.INFO)) == "[I] Transfer seen"
        assert formatter.format(make_record(logging.ERROR)) == "[E] nft_monitor.services: Transfer seen"

    def test_colored_output_wraps_the_tag(self):
        line = logging_config.ConciseFormatter(use_color=True).format(make_record(logging.WARNING))
        assert line == "\033[33m[W]\033[0m Transfer seen"

    def test_unknown_level_uses_info_layout(self):
        formatter = logging_config.ConciseFormatter(use_color=False)
        assert formatter.format(make_record(25)) == "[I] Transfer seen"

    def test_verbose_format_has_line_number(self):
        line = logging_config.VerboseFormatter().format(make_record(logging.DEBUG))
        assert line.endswith("DEBUG    nft_monitor.services:10 Transfer seen")

    def test_color_only_on_a_terminal(self, monkeypatch):
        class Tty:
            def isatty(self):
                return True

        monkeypatch.delenv('NO_COLOR', raising=False)
        assert logging_config.stream_supports_color(Tty())
        assert not logging_config.stream_supports_color(io.StringIO())
        monkeypatch.setenv('NO_COLOR', "1")
        assert not logging_config.stream_supports_color(Tty())
