import pygame
import time
import sys
import re

import numpy as np

BOX_SIZE = 110
BOX_SPACING = 30
SCREEN_MARGIN = 40
TONE_SAMPLE_RATE = 44100


def box_row_layout(n_boxes, screen_width, box_size=BOX_SIZE, box_spacing=BOX_SPACING, margin=SCREEN_MARGIN):
    """
    Size, spacing and left edge of the box row, scaled down so the row
    fits between the screen margins.

    Returns:
        (box_size, box_spacing, left) in pixels
    """
    row_width = n_boxes * box_size + (n_boxes - 1) * box_spacing
    available = screen_width - 2 * margin
    if row_width > available:
        scale = available / row_width
        box_size = int(box_size * scale)
        box_spacing = int(box_spacing * scale)
        row_width = n_boxes * box_size + (n_boxes - 1) * box_spacing
    return box_size, box_spacing, (screen_width - row_width) // 2


def synthesize_tone(frequency_hz, duration_ms, sample_rate, channels=1):
    """Decaying sine as int16 samples, shaped (n,) for mono or (n, channels)."""
    n_samples = int(sample_rate * duration_ms / 1000)
    t = np.arange(n_samples) / sample_rate
    # exponential fade from 0.5 to 0.01 over the tone
    envelope = 0.5 * np.power(0.02, t / t[-1]) if n_samples > 1 else np.full(n_samples, 0.5)
    samples = (envelope * np.sin(2 * np.pi * frequency_hz * t) * 32767).astype(np.int16)
    if channels > 1:
        samples = np.repeat(samples[:, None], channels, axis=1)
    return np.ascontiguousarray(samples)


class PygameDisplay:
    """
    Pygame front end for the sequence-learning task.

    Draws the row of position boxes (target, key labels, feedback), captures
    key presses with their reaction time from stimulus onset, and plays the
    error tone. Escape or closing the window quits the program.
    """
    def __init__(self, config):
        pygame.init()
        pygame.font.init()
        self.config = config
        self.screen = self._setup_screen()
        self.screen_width, self.screen_height = self.screen.get_size()
        self.clock = pygame.time.Clock()
        self.FONT_LARGE = pygame.font.Font(None, 74)
        self.FONT_MEDIUM = pygame.font.Font(None, 50)
        self.FONT_SMALL = pygame.font.Font(None, 36)
        self.stimulus_onset_ms = None
        self.error_tone = self._build_error_tone()

    def _setup_screen(self):
        if self.config.FULLSCREEN_MODE:
            display_info = pygame.display.Info()
            screen = pygame.display.set_mode((display_info.current_w, display_info.current_h), pygame.FULLSCREEN)
        else:
            screen = pygame.display.set_mode((self.config.SCREEN_WIDTH, self.config.SCREEN_HEIGHT))
        pygame.display.set_caption("Sequence Learning Task")
        return screen

    def _build_error_tone(self):
        try:
            pygame.mixer.init(frequency=TONE_SAMPLE_RATE, size=-16, channels=1)
        except pygame.error as e:
            print(f"Warning: Audio unavailable ({e}). Error tone disabled.")
            return None

        # pygame.init() may already have opened the mixer with other settings
        sample_rate, _, channels = pygame.mixer.get_init()
        samples = synthesize_tone(self.config.ERROR_TONE_FREQUENCY, self.config.ERROR_TONE_DURATION_MS,
                                  sample_rate, channels)
        return pygame.sndarray.make_sound(samples)

    # --- Trial collaborator interface ---

    def present_stimulus(self, position, show_keys):
        self._draw_boxes(position, show_keys)
        pygame.display.flip()
        pygame.event.clear(pygame.KEYDOWN)
        self.stimulus_onset_ms = pygame.time.get_ticks()

    def wait_for_response(self):
        """Blocks until a key is pressed. Returns (key name, ms since stimulus onset)."""
        while True:
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    self.quit_pygame_and_exit()
                if event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE:
                        self.quit_pygame_and_exit()
                    reaction_time_ms = pygame.time.get_ticks() - self.stimulus_onset_ms
                    return pygame.key.name(event.key).lower(), float(reaction_time_ms)
            pygame.time.wait(1)

    def show_feedback(self, position, correct, show_keys, duration_ms):
        if correct:
            message, color = "Correct!", self.config.GREEN
        else:
            message, color = "Wrong! Try again!", self.config.RED
        self._draw_boxes(position, show_keys, feedback=message, feedback_color=color)
        pygame.display.flip()
        self._wait(duration_ms)

    def play_error_tone(self):
        if self.error_tone is not None:
            self.error_tone.play()
        else:
            print(f"BEEP! ({self.config.ERROR_TONE_FREQUENCY}Hz, {self.config.ERROR_TONE_DURATION_MS}ms)")

    def show_interval(self, show_keys, duration_ms):
        self._draw_boxes(None, show_keys)
        pygame.display.flip()
        self._wait(duration_ms)

    # --- Drawing helpers ---

    def _draw_boxes(self, position, show_keys, feedback="", feedback_color=None):
        self.screen.fill(self.config.BACKGROUND_COLOR)
        n_boxes = self.config.MATRIX_SIZE
        box_size, box_spacing, left = box_row_layout(n_boxes, self.screen_width)
        top = (self.screen_height - box_size) // 2

        if feedback:
            feedback_surface = self.FONT_MEDIUM.render(feedback, True, feedback_color or self.config.BLACK)
            self.screen.blit(feedback_surface, feedback_surface.get_rect(centerx=self.screen_width // 2,
                                                                         bottom=top - 90))

        for i in range(n_boxes):
            box = pygame.Rect(left + i * (box_size + box_spacing), top, box_size, box_size)
            pygame.draw.rect(self.screen, self.config.BOX_COLOR, box, border_radius=8)
            pygame.draw.rect(self.screen, self.config.BLACK, box, width=3, border_radius=8)
            if i == position:
                pygame.draw.circle(self.screen, self.config.TARGET_COLOR, box.center, box_size // 3)
            if show_keys:
                label = self.FONT_MEDIUM.render(self.config.KEY_MAPPING[i].upper(), True, self.config.BLACK)
                self.screen.blit(label, label.get_rect(centerx=box.centerx, bottom=box.top - 12))

    def _wait(self, duration_ms):
        start_time = pygame.time.get_ticks()
        while pygame.time.get_ticks() - start_time < duration_ms:
            for event in pygame.event.get():
                if event.type == pygame.QUIT: self.quit_pygame_and_exit()
                if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE: self.quit_pygame_and_exit()
            pygame.time.wait(1)

    # --- Message screens ---

    def display_message_screen(self, message, duration_ms=0, wait_for_key=False, font=None, bg_color=None, text_color=None):
        """
        Shows centered multi-line text. Segments written as #color:text# are
        drawn in the config colour of that name (e.g. #red:Try again#).
        """
        font = font if font else self.FONT_MEDIUM
        bg_color = bg_color if bg_color else self.config.BACKGROUND_COLOR
        text_color = text_color if text_color else self.config.BLACK

        self.screen.fill(bg_color)
        lines = message.splitlines()
        pattern = r'#([A-Za-z0-9_]+):([^#]+)#'

        font_height = font.get_height()
        current_y = (self.screen_height - len(lines) * font_height) // 2
        for line in lines:
            segments = []
            last_end = 0
            for match in re.finditer(pattern, line):
                if match.start() > last_end:
                    segments.append((line[last_end:match.start()], text_color))
                color_name, color_text = match.groups()
                segments.append((color_text, getattr(self.config, color_name.upper(), text_color)))
                last_end = match.end()
            if last_end < len(line):
                segments.append((line[last_end:], text_color))

            current_x = (self.screen_width - sum(font.size(text)[0] for text, _ in segments)) // 2
            for text, color in segments:
                if text:
                    text_surface = font.render(text, True, color)
                    self.screen.blit(text_surface, (current_x, current_y))
                    current_x += text_surface.get_width()
            current_y += font_height

        pygame.display.flip()

        pygame.event.clear(pygame.KEYDOWN)
        start_time = pygame.time.get_ticks()
        running = True
        while running:
            for event in pygame.event.get():
                if event.type == pygame.QUIT: self.quit_pygame_and_exit()
                if event.type == pygame.KEYDOWN:
                    if event.key == pygame.K_ESCAPE: self.quit_pygame_and_exit()
                    if wait_for_key: running = False
            if not wait_for_key and (pygame.time.get_ticks() - start_time >= duration_ms):
                running = False
            pygame.time.wait(10)

    def display_timer_with_message(self, message, duration_ms, font=None, bg_color=None, text_color=None):
        """
        Displays a countdown timer below a message.

        Args:
            message (str): Text shown above the timer
            duration_ms (int): Total duration in ms
        """
        font = font if font else self.FONT_MEDIUM
        bg_color = bg_color if bg_color else self.config.BACKGROUND_COLOR
        text_color = text_color if text_color else self.config.BLACK

        end_time = time.time() + duration_ms / 1000.0
        message_lines = message.split('\n')
        line_height = font.get_linesize()
        start_y = (self.screen_height // 2 - 50) - (line_height * len(message_lines))

        while True:
            remaining_time = max(0, end_time - time.time())
            time_text = f"{int(remaining_time // 60):02d}:{int(remaining_time % 60):02d}"

            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    self.quit_pygame_and_exit()
                if event.type == pygame.KEYDOWN and event.key == pygame.K_ESCAPE:
                    self.quit_pygame_and_exit()

            self.screen.fill(bg_color)
            for i, line in enumerate(message_lines):
                message_surface = font.render(line, True, text_color)
                self.screen.blit(message_surface, message_surface.get_rect(
                    center=(self.screen_width // 2, start_y + i * line_height)))

            timer_surface = self.FONT_LARGE.render(time_text, True, text_color)
            self.screen.blit(timer_surface, timer_surface.get_rect(
                center=(self.screen_width // 2, self.screen_height // 2 + 50)))
            pygame.display.flip()

            if remaining_time <= 0:
                break
            pygame.time.wait(10)

    def quit_pygame_and_exit(self):
        pygame.quit()
        sys.exit()
