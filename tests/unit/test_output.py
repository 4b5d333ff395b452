"""Tests for console output and hints."""

import io
import json
import time

from rich.console import Console

from pastoralist.output import ConsoleOutput, HintStore, pastoralist_home, show_hint


class TestHintStore:
    """Test hint persistence."""

    def test_home_from_environment(self, isolated_home):
        assert pastoralist_home() == isolated_home

    def test_shown_once_within_ttl(self, hint_store, output):
        assert show_hint("rc-file", "Move config", output, hint_store)
        assert not show_hint("rc-file", "Move config", output, hint_store)
        assert output.lines == ["hint: Move config"]

    def test_shown_again_after_ttl(self, hint_store, output):
        hint_store.path.write_text(json.dumps({"rc-file": time.time() - 100}))
        assert show_hint("rc-file", "Move config", output, hint_store, ttl=10)

    def test_corrupt_store_treated_as_empty(self, hint_store):
        hint_store.path.write_text("not json")
        assert hint_store.load() == {}
        assert hint_store.should_show("rc-file")

    def test_clear(self, hint_store):
        hint_store.mark_shown("rc-file")
        hint_store.clear()
        assert hint_store.load() == {}


class TestConsoleOutput:
    def test_writes_without_markup(self):
        buffer = io.StringIO()
        output = ConsoleOutput(Console(file=buffer, width=120))
        output.write_line("[DRY RUN] Would write to package.json:")
        output.write('{"name": "app"}\n')
        assert buffer.getvalue() == '[DRY RUN] Would write to package.json:\n{"name": "app"}\n'

    def test_hint_panel(self):
        buffer = io.StringIO()
        ConsoleOutput(Console(file=buffer, width=120)).hint("Move config")
        assert "Move config" in buffer.getvalue()
