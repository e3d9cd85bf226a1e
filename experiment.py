import argparse
import math
import os
import random
import string
import sys
import time

import pygame
from colorama import Fore, Style
from dotenv import load_dotenv

from errors import ConfigurationError, ExperimentError
from matrices import SUPPORTED_SIZES, get_library_matrix, load_transition_matrix, shuffle_transition_matrix
from trial_generator import TrialGenerator
from trial_state_machine import TrialLog, TrialStateMachine
from block_feedback import summarize, select_feedback, format_feedback
from logger import TrialDataLogger, TextLogger
from pygame_display import PygameDisplay
from emulator import Emulator

PRACTICE_BLOCK = -1

# Key mappings (position index -> keyboard key), left to right on a QWERTY home row
KEY_MAPPINGS = {
    4: ["d", "f", "j", "k"],
    5: ["s", "d", "f", "j", "k"],
    6: ["s", "d", "f", "j", "k", "l"],
    7: ["a", "s", "d", "f", "j", "k", "l"],
    8: ["a", "s", "d", "f", "j", "k", "l", ";"],
}


def _env_flag(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# --- Experiment Parameters ---
class ExperimentConfig:
    """
    Holds all configuration parameters for the task: matrix size and key
    mapping, trial structure, timing, feedback thresholds, display and output
    folders. Trial counts are derived from the matrix size. The instance is
    frozen once constructed.
    """
    def __init__(self, matrix_size, n_blocks=3, rsi_ms=120, correct_feedback_duration_ms=200,
                 error_feedback_duration_ms=200, accuracy_threshold=0.5, final_accuracy_threshold=0.85,
                 rt_threshold_ms=1000, block_break_duration_ms=15000, fullscreen=None,
                 data_folder=None, log_folder=None):
        if matrix_size not in KEY_MAPPINGS:
            raise ConfigurationError(
                f"Unsupported matrix size {matrix_size}; no key mapping defined.",
                option="matrix_size",
                value=matrix_size,
                details={"supported": sorted(KEY_MAPPINGS)},
            )
        if n_blocks < 1:
            raise ConfigurationError(f"n_blocks must be at least 1, got {n_blocks}.", option="n_blocks", value=n_blocks)
        for option, value in (("accuracy_threshold", accuracy_threshold),
                              ("final_accuracy_threshold", final_accuracy_threshold)):
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{option} must lie in [0, 1], got {value}.", option=option, value=value)
        for option, value in (("rsi_ms", rsi_ms),
                              ("correct_feedback_duration_ms", correct_feedback_duration_ms),
                              ("error_feedback_duration_ms", error_feedback_duration_ms),
                              ("block_break_duration_ms", block_break_duration_ms),
                              ("rt_threshold_ms", rt_threshold_ms)):
            if value < 0:
                raise ConfigurationError(f"{option} must be non-negative, got {value}.", option=option, value=value)

        # Matrix and response keys
        self.MATRIX_SIZE = matrix_size
        self.KEY_MAPPING = tuple(KEY_MAPPINGS[matrix_size])

        # Trial structure
        self.N_BLOCKS = n_blocks
        self.TRIALS_PER_BLOCK = matrix_size * 10  # 10x matrix size for sufficient learning
        self.PRACTICE_TRIALS = matrix_size * 2
        self.TOTAL_TRIALS = self.N_BLOCKS * self.TRIALS_PER_BLOCK

        # Durations (in milliseconds)
        self.RSI_MS = rsi_ms
        self.CORRECT_FEEDBACK_DURATION_MS = correct_feedback_duration_ms
        self.ERROR_FEEDBACK_DURATION_MS = error_feedback_duration_ms
        self.ERROR_TONE_DURATION_MS = 100
        self.ERROR_TONE_FREQUENCY = 200  # Hz, low tone for errors
        self.BLOCK_BREAK_DURATION_MS = block_break_duration_ms
        self.ESTIMATED_TRIAL_DURATION_MS = 500

        # Adaptive feedback thresholds
        self.ACCURACY_THRESHOLD = accuracy_threshold
        self.FINAL_ACCURACY_THRESHOLD = final_accuracy_threshold
        self.RT_THRESHOLD_MS = rt_threshold_ms

        # Screen
        self.SCREEN_WIDTH = 1000
        self.SCREEN_HEIGHT = 700
        self.FULLSCREEN_MODE = fullscreen if fullscreen is not None else _env_flag("SRT_FULLSCREEN", True)

        # Colors (RGB tuples)
        self.WHITE = (255, 255, 255)
        self.BLACK = (0, 0, 0)
        self.GRAY = (150, 150, 150)
        self.RED = (244, 67, 54)
        self.BLUE = (33, 150, 243)
        self.GREEN = (76, 175, 80)
        self.BACKGROUND_COLOR = (235, 235, 235)
        self.BOX_COLOR = self.WHITE
        self.TARGET_COLOR = (121, 85, 72)

        # Output
        self.DATA_FOLDER = data_folder or os.environ.get("SRT_DATA_FOLDER", "data")
        self.LOG_FOLDER = log_folder or os.environ.get("SRT_LOG_FOLDER", "logs")

        self._frozen = True

    def __setattr__(self, name, value):
        if getattr(self, "_frozen", False):
            raise AttributeError(f"ExperimentConfig is read-only; cannot set {name}.")
        super().__setattr__(name, value)

    def estimated_duration_minutes(self):
        trial_ms = self.ESTIMATED_TRIAL_DURATION_MS + self.RSI_MS
        total_ms = self.TOTAL_TRIALS * trial_ms + self.N_BLOCKS * self.BLOCK_BREAK_DURATION_MS
        return math.ceil(total_ms / 60000)


def generate_subject_id(length=10):
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


class Experiment:
    """
    Runs one session: practice trials on a balanced sequence, then N_BLOCKS
    blocks on the Markov sequence, with block breaks in between and a final
    summary. Owns the trial logs, the shuffled matrix and the sequences.

    Args:
        config: ExperimentConfig.
        display: PygameDisplay, Emulator, or any object with the same methods.
                 A PygameDisplay is created when None.
        participant_id: Subject identifier; a random one when None.
        seed: Seed for shuffling and sequence generation.
        matrix: Unshuffled TransitionMatrix; the library matrix for the
                configured size when None.
        max_attempts: Optional cap on responses per trial.
    """
    def __init__(self, config, display=None, participant_id=None, seed=None, matrix=None,
                 max_attempts=None, text_logger=None):
        self.config = config
        self.seed = seed
        self.rng = random.Random(seed)
        self.participant_id = participant_id or generate_subject_id()

        self.base_matrix = matrix if matrix is not None else get_library_matrix(config.MATRIX_SIZE)
        if self.base_matrix.size != config.MATRIX_SIZE:
            raise ConfigurationError(
                f"Matrix of size {self.base_matrix.size} does not match matrix_size {config.MATRIX_SIZE}.",
                option="matrix_size",
                value=config.MATRIX_SIZE,
            )

        self.display = display if display is not None else PygameDisplay(config)
        self.trial_generator = TrialGenerator(config, self.rng)
        self.trial_log = TrialLog()
        self.practice_log = TrialLog()
        self.main_machine = TrialStateMachine(config, self.display, self.trial_log, max_attempts)
        self.practice_machine = TrialStateMachine(config, self.display, self.practice_log, max_attempts)
        self.data_logger = TrialDataLogger({
            "data_folder": config.DATA_FOLDER,
            "filename_template": "{participant_id}_srt_data_{timestamp}.csv",
        })
        self.text_logger = text_logger or TextLogger(config.LOG_FOLDER)

        self.transition_matrix = None
        self.position_entropies = None
        self.sequence = None
        self.practice_sequence = None
        self.start_time = None
        self.end_time = None

    @property
    def initialized(self):
        return self.sequence is not None

    def initialize(self, start_state=None):
        """Shuffles the matrix and precomputes the practice and main sequences."""
        self.transition_matrix = shuffle_transition_matrix(self.base_matrix, self.rng)
        self.position_entropies = self.transition_matrix.entropies()
        self.sequence = self.trial_generator.generate_main_sequence(self.transition_matrix, start_state)
        self.practice_sequence = self.trial_generator.generate_practice_sequence()
        self.start_time = int(time.time() * 1000)

        self.data_logger.set_metadata(
            matrix_size=self.config.MATRIX_SIZE,
            transition_matrix=self.transition_matrix.to_json(),
            sequence=str(self.sequence),
            position_entropies=str([round(h, 4) for h in self.position_entropies]),
            trials_per_block=self.config.TRIALS_PER_BLOCK,
            total_trials=self.config.TOTAL_TRIALS,
            practice_trials=self.config.PRACTICE_TRIALS,
            seed=self.seed,
            start_time=self.start_time,
        )
        self.text_logger.log(
            f"Experiment initialized: participant={self.participant_id} matrix_size={self.config.MATRIX_SIZE} "
            f"total_trials={self.config.TOTAL_TRIALS} seed={self.seed}"
        )
        self.text_logger.log(f"Shuffled transition matrix: {self.transition_matrix.to_json()}")
        self.text_logger.log(f"Position entropies (bits): {[round(h, 3) for h in self.position_entropies]}")

    def _record_trial(self, trial_log, final_state):
        record = trial_log.records[-1]
        self.data_logger.add_trial_data({
            "subject_id": self.participant_id,
            **record.to_dict(),
            "n_attempts": final_state.attempts,
        })
        self.text_logger.log(
            f"{record.phase} block={record.block} trial={record.trial_in_block} overall={record.overall_trial} "
            f"position={record.target_position} key={record.key_pressed} correct={record.is_correct} "
            f"rt={record.reaction_time_ms:.0f}ms attempts={final_state.attempts}"
        )

    def run_practice(self):
        """Runs the practice trials (labels always shown) and returns their BlockStats."""
        for trial_index, position in enumerate(self.practice_sequence):
            final_state = self.practice_machine.run(position, PRACTICE_BLOCK, trial_index, trial_index, practice=True)
            self._record_trial(self.practice_log, final_state)
        return summarize(self.practice_log, PRACTICE_BLOCK)

    def run_block(self, block):
        """Runs every trial of one main block (0-based) and returns its BlockStats."""
        print(f"Running block {block + 1} of {self.config.N_BLOCKS}")
        for trial_in_block in range(self.config.TRIALS_PER_BLOCK):
            overall_trial, position = self.trial_generator.position_for_trial(self.sequence, block, trial_in_block)
            final_state = self.main_machine.run(position, block, trial_in_block, overall_trial)
            self._record_trial(self.trial_log, final_state)
        return summarize(self.trial_log, block)

    def _show_intro_screen(self):
        keys = "  ".join(k.upper() for k in self.config.KEY_MAPPING)
        intro_text = (
            f"In each trial one of {self.config.MATRIX_SIZE} boxes will show a target.\n\n"
            f"Press the matching key as quickly and accurately as possible:\n\n{keys}\n\n"
            "If you press the wrong key, try again until you get it right.\n\n"
            f"You will start with {self.config.PRACTICE_TRIALS} practice trials.\n\n"
            "Press any key to begin."
        )
        self.display.display_message_screen(intro_text, wait_for_key=True)

    def _show_practice_end_screen(self, stats):
        text = (
            "Practice Complete!\n\n"
            f"You got {stats.accuracy_percent_text()} of the trials correct.\n\n"
            "Remember: respond as quickly and accurately as possible.\n\n"
            f"You will now complete {self.config.N_BLOCKS} blocks of {self.config.TRIALS_PER_BLOCK} trials.\n"
            f"Between blocks you get a {self.config.BLOCK_BREAK_DURATION_MS // 1000}-second break.\n"
            f"The task takes about {self.config.estimated_duration_minutes()} minutes.\n\n"
            "Press any key to start the main task."
        )
        self.display.display_message_screen(text, wait_for_key=True)

    def _show_block_break_screen(self, block, stats):
        feedback = select_feedback(stats, self.config.ACCURACY_THRESHOLD, self.config.RT_THRESHOLD_MS)
        self.text_logger.log(
            f"Block {block + 1} summary: trials={stats.n_trials} accuracy={stats.accuracy} "
            f"mean_rt={stats.mean_rt_ms} feedback={feedback.name}"
        )
        print(Fore.GREEN + f"Block {block + 1}: accuracy {stats.accuracy_percent_text()}, feedback '{feedback.value}'" + Style.RESET_ALL)

        msg = (f"Block {block + 1} of {self.config.N_BLOCKS} Complete!\n\n"
               f"You got {stats.accuracy_percent_text()} of the trials correct.\n\nTake a break.")
        self.display.display_timer_with_message(msg, self.config.BLOCK_BREAK_DURATION_MS)
        msg = f"{format_feedback(feedback)}\n\nPress any key to continue to the next block."
        self.display.display_message_screen(msg, wait_for_key=True)
        return feedback

    def _show_final_summary(self):
        self.end_time = int(time.time() * 1000)
        self.data_logger.set_metadata(end_time=self.end_time)

        stats = summarize(self.trial_log, self.config.N_BLOCKS - 1)
        feedback = select_feedback(stats, self.config.FINAL_ACCURACY_THRESHOLD, self.config.RT_THRESHOLD_MS)
        self.text_logger.log(
            f"Final block summary: trials={stats.n_trials} accuracy={stats.accuracy} "
            f"mean_rt={stats.mean_rt_ms} feedback={feedback.name}"
        )
        text = (
            "All Blocks Complete!\n\n"
            f"Final block: you got {stats.accuracy_percent_text()} of the trials correct.\n\n"
            f"{format_feedback(feedback)}\n\n"
            "Thank you for completing all the trials!\n\nPress any key to finish."
        )
        self.display.display_message_screen(text, wait_for_key=True)
        return feedback

    def _end_experiment(self):
        saved_file = self.data_logger.save_data(self.participant_id)
        if saved_file:
            self.text_logger.log(f"Data saved to {saved_file}")
            self.display.display_message_screen("Data saved.\n\nThank you for your participation.", duration_ms=3000)
        else:
            self.text_logger.log("Data could not be saved.")
            self.display.display_message_screen("Error: Could not save data!", duration_ms=3000,
                                                bg_color=self.config.RED)
        return saved_file

    def run_experiment(self):
        """
        Main experiment loop: practice, all blocks with breaks, final summary.
        Returns the path of the saved CSV (None if saving failed).
        """
        if not self.initialized:
            self.initialize()

        self._show_intro_screen()
        practice_stats = self.run_practice()
        self.text_logger.log(f"Practice summary: trials={practice_stats.n_trials} accuracy={practice_stats.accuracy}")
        self._show_practice_end_screen(practice_stats)

        for block in range(self.config.N_BLOCKS):
            stats = self.run_block(block)
            if block < self.config.N_BLOCKS - 1:
                self._show_block_break_screen(block, stats)

        self._show_final_summary()
        return self._end_experiment()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Markov-sequence serial reaction time task")
    parser.add_argument("--participant", type=str, default=None, help="Participant identifier (random if omitted)")
    parser.add_argument("--matrix-size", type=int, default=None, choices=SUPPORTED_SIZES,
                        help="Number of positions (randomly assigned if omitted)")
    parser.add_argument("--matrix-file", type=str, default=None, help="Load the transition matrix from .npy or .json")
    parser.add_argument("--blocks", type=int, default=3, help="Number of main blocks")
    parser.add_argument("--seed", type=int, default=None, help="Seed for shuffling and sequence generation")
    parser.add_argument("--windowed", action="store_true", help="Run in a window instead of fullscreen")
    parser.add_argument("--emulate", action="store_true", help="Run headless with a simulated participant")
    return parser.parse_args(argv)


def main(argv=None):
    # Load environment variables from .env file (data/log folders, fullscreen)
    load_dotenv()
    args = parse_args(argv)

    try:
        matrix = load_transition_matrix(args.matrix_file) if args.matrix_file else None
        # seeded so --seed also fixes the drawn matrix size
        matrix_size = args.matrix_size or (matrix.size if matrix is not None
                                           else random.Random(args.seed).choice(SUPPORTED_SIZES))
        config = ExperimentConfig(matrix_size, n_blocks=args.blocks, fullscreen=False if args.windowed else None)
    except (ExperimentError, ValueError, OSError) as e:
        print(Fore.RED + f"Error: {e}" + Style.RESET_ALL)
        sys.exit(1)

    experiment = None
    try:
        display = Emulator(config, seed=args.seed) if args.emulate else None
        experiment = Experiment(config, display=display, participant_id=args.participant, seed=args.seed,
                                matrix=matrix, max_attempts=50 if args.emulate else None)
        experiment.run_experiment()
    except SystemExit:
        print("Experiment exited.")
    except ExperimentError as e:
        print(Fore.RED + f"Experiment aborted: {e} {e.details}" + Style.RESET_ALL)
        sys.exit(1)
    except Exception as e:
        print(Fore.RED + f"An unexpected error occurred during the experiment: {e}" + Style.RESET_ALL)
        raise
    finally:
        if experiment is not None and experiment.trial_log and experiment.end_time is None:
            print(f"Session ended early after {len(experiment.trial_log)} main trials.")
        print("\n" + "=" * 50)
        print("SEQUENCE LEARNING TASK ENDED")
        print("=" * 50)
        pygame.quit()


if __name__ == "__main__":
    main()
