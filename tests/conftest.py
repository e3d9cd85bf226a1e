import pytest

from experiment import ExperimentConfig
from logger import TextLogger


class ScriptedDisplay:
    """Display stand-in that replays a fixed list of (key, reaction_time_ms) presses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.events = []

    def present_stimulus(self, position, show_keys):
        self.events.append(("stimulus", position, show_keys))

    def wait_for_response(self):
        key, rt = self.responses.pop(0)
        self.events.append(("response", key, rt))
        return key, rt

    def show_feedback(self, position, correct, show_keys, duration_ms):
        self.events.append(("feedback", position, correct, show_keys, duration_ms))

    def play_error_tone(self):
        self.events.append(("tone",))

    def show_interval(self, show_keys, duration_ms):
        self.events.append(("interval", show_keys, duration_ms))

    def of_kind(self, kind):
        return [e for e in self.events if e[0] == kind]


@pytest.fixture
def make_config(tmp_path):
    def _make(matrix_size=4, **kwargs):
        kwargs.setdefault("fullscreen", False)
        kwargs.setdefault("data_folder", str(tmp_path / "data"))
        kwargs.setdefault("log_folder", str(tmp_path / "logs"))
        return ExperimentConfig(matrix_size, **kwargs)
    return _make


@pytest.fixture
def config(make_config):
    return make_config(4)


@pytest.fixture
def text_logger(tmp_path):
    return TextLogger(log_dir=str(tmp_path / "logs"))
