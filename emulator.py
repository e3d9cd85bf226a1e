import sys
import time

import numpy as np

# --- emulator.py: Simulated participant for headless runs ---


class Emulator:
    """
    Simulates a participant using the same interface as PygameDisplay.

    Each stimulus presentation is answered with the correct key with
    probability `accuracy`, otherwise with a random wrong key. Reaction times
    are drawn from a normal distribution floored at `min_rt_ms`. With
    probability `stray_key_rate` an unmapped key is pressed first. Used for
    development and testing without a screen or keyboard.

    Every call is appended to `events` so a run can be inspected afterwards.
    """
    STRAY_KEYS = ("x", "space", "return")

    def __init__(self, config, accuracy=0.9, mean_rt_ms=450.0, rt_sd_ms=80.0, min_rt_ms=150.0,
                 stray_key_rate=0.0, seed=None, realtime=False):
        self.config = config
        self.key_mapping = list(config.KEY_MAPPING)
        self.accuracy = accuracy
        self.mean_rt_ms = mean_rt_ms
        self.rt_sd_ms = rt_sd_ms
        self.min_rt_ms = min_rt_ms
        self.stray_key_rate = stray_key_rate
        self.realtime = realtime
        self.rng = np.random.default_rng(seed)
        self.events = []
        self._pending_responses = []

    def _draw_rt(self):
        return float(max(self.min_rt_ms, self.rng.normal(self.mean_rt_ms, self.rt_sd_ms)))

    def _sleep(self, duration_ms):
        if self.realtime:
            time.sleep(duration_ms / 1000.0)

    def present_stimulus(self, position, show_keys):
        self.events.append(("stimulus", position, show_keys))
        if self.rng.random() < self.accuracy:
            key = self.key_mapping[position]
        else:
            wrong_keys = [k for i, k in enumerate(self.key_mapping) if i != position]
            key = wrong_keys[self.rng.integers(len(wrong_keys))]
        rt = self._draw_rt()
        self._pending_responses = [(key, rt)]
        if self.rng.random() < self.stray_key_rate:
            stray = self.STRAY_KEYS[self.rng.integers(len(self.STRAY_KEYS))]
            self._pending_responses.insert(0, (stray, rt / 2))

    def wait_for_response(self):
        if not self._pending_responses:
            raise RuntimeError("wait_for_response called before present_stimulus")
        key, rt = self._pending_responses.pop(0)
        self._sleep(rt)
        self.events.append(("response", key, rt))
        return key, rt

    def show_feedback(self, position, correct, show_keys, duration_ms):
        self.events.append(("feedback", position, correct, show_keys, duration_ms))
        self._sleep(duration_ms)

    def play_error_tone(self):
        self.events.append(("tone",))

    def show_interval(self, show_keys, duration_ms):
        self.events.append(("interval", show_keys, duration_ms))
        self._sleep(duration_ms)

    def display_message_screen(self, message, duration_ms=0, wait_for_key=False, **kwargs):
        self.events.append(("message", message))
        if not wait_for_key:
            self._sleep(duration_ms)

    def display_timer_with_message(self, message, duration_ms, **kwargs):
        self.events.append(("timer", message, duration_ms))
        self._sleep(duration_ms)

    def quit_pygame_and_exit(self):
        print("Emulator stopped.")
        sys.exit()
