import os
import time
from typing import Optional

import pandas as pd
from colorama import Fore, Style

# --- logger.py: Trial data export and session event logging ---

TRIAL_FIELDNAMES = [
    "subject_id", "phase", "block", "trial_in_block", "overall_trial",
    "target_position", "key_pressed", "correct_key", "is_correct",
    "reaction_time_ms", "n_attempts",
]

METADATA_FIELDNAMES = [
    "matrix_size", "transition_matrix", "sequence", "position_entropies",
    "trials_per_block", "total_trials", "practice_trials", "seed",
    "start_time", "end_time",
]


class TrialDataLogger:
    """
    Collects one row per logical trial and saves them to CSV.

    Experiment-level metadata (matrix, sequence, ...) is attached to every
    exported row. Config keys: data_folder, filename_template, fieldnames.
    """
    def __init__(self, config):
        self.config = config
        self.all_trial_data = []
        self.metadata = {}

    def add_trial_data(self, data):
        self.all_trial_data.append(data)

    def set_metadata(self, **metadata):
        self.metadata.update(metadata)

    def to_dataframe(self):
        fieldnames = self.config.get("fieldnames", TRIAL_FIELDNAMES + METADATA_FIELDNAMES)
        rows = [{**self.metadata, **row} for row in self.all_trial_data]
        return pd.DataFrame(rows, columns=fieldnames)

    def save_data(self, participant_id):
        if not self.all_trial_data:
            print(Fore.YELLOW + "No trial data to save." + Style.RESET_ALL)
            return None

        data_folder = self.config.get("data_folder", "data")
        filename_template = self.config.get("filename_template", "{participant_id}_srt_data_{timestamp}.csv")
        os.makedirs(data_folder, exist_ok=True)

        timestamp_str = time.strftime("%Y%m%d_%H%M%S")
        filename = filename_template.format(participant_id=participant_id, timestamp=timestamp_str)
        filepath = os.path.join(data_folder, filename)

        try:
            self.to_dataframe().to_csv(filepath, index=False)
            print(Fore.GREEN + f"Data saved to {filepath}" + Style.RESET_ALL)
            return filepath
        except OSError as e:
            print(Fore.RED + f"Error: Could not save data to {filepath}. Error: {e}" + Style.RESET_ALL)
            return None


class TextLogger:
    """
    Appends session events as lines to a timestamped text file.

    Args:
        log_dir (str): Directory for the log file. Defaults to "logs".
        filename (str): Base name; a timestamp is inserted before the extension.
        timestamp_format (str, optional): time.strftime format prepended to each
                                          line. No timestamp when None.
    """
    def __init__(self, log_dir: str = "logs", filename: str = "srt_events.txt",
                 timestamp_format: Optional[str] = "%Y-%m-%d %H:%M:%S"):
        os.makedirs(log_dir, exist_ok=True)
        name, ext = os.path.splitext(filename)
        self.filepath: str = os.path.join(log_dir, f"{name}_{time.strftime('%Y%m%d_%H%M%S')}{ext}")
        self.timestamp_format: Optional[str] = timestamp_format
        print(f"Logger initialized. Logging to: {self.filepath}")

    def log(self, message: str):
        entry = message
        if self.timestamp_format:
            entry = f"[{time.strftime(self.timestamp_format)}] {message}"
        try:
            with open(self.filepath, 'a', encoding='utf-8') as f:
                f.write(entry + '\n')
        except OSError as e:
            print(Fore.RED + f"Error: Could not write to log file {self.filepath}. Details: {e}" + Style.RESET_ALL)
