"""
BetaCrew Data Saver Module
==========================

Writes the final ordered packet list to disk.

Output File Formats:

JSON (default stock_data.json):
- Single pretty-printed JSON array (indent=2), ordered by sequence
- Overwritten on every run

CSV (optional, same name with .csv suffix):
- Header row: symbol, side, quantity, price, sequence
- One packet per row
"""

import csv
import json
import logging
from pathlib import Path
from typing import Dict, List

logger = logging.getLogger(__name__)

CSV_FIELDS = ['symbol', 'side', 'quantity', 'price', 'sequence']


class DataSaver:
    """
    Persists collected packets to JSON (and optionally CSV).

    Features:
    - Automatic parent directory creation
    - Overwrite mode (each run replaces the previous output)
    - Statistics tracking (files saved, packets written, errors)
    """

    def __init__(self, output_path: str = 'stock_data.json', save_csv: bool = False):
        """
        Initialize data saver.

        Args:
            output_path: JSON output file
            save_csv: If True, also write a CSV file next to the JSON file
        """
        self.output_path = Path(output_path)
        self.csv_path = self.output_path.with_suffix('.csv')
        self.save_csv = save_csv

        self.stats = {
            'json_files_saved': 0,
            'csv_files_saved': 0,
            'packets_written': 0,
            'io_errors': 0
        }

    def save_packets(self, packets: List[Dict]) -> Path:
        """
        Save packets to the configured output file(s).

        Args:
            packets: Packets ordered by sequence

        Returns:
            Path of the JSON file written

        Raises:
            OSError: If a file cannot be written
        """
        self.save_to_json(packets)
        if self.save_csv:
            self.save_to_csv(packets)
        return self.output_path

    def save_to_json(self, packets: List[Dict]):
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.output_path, 'w', encoding='utf-8') as f:
                json.dump(packets, f, indent=2)

            self.stats['json_files_saved'] += 1
            self.stats['packets_written'] += len(packets)
            logger.info(f"Output saved to {self.output_path}")

        except OSError as e:
            self.stats['io_errors'] += 1
            logger.error(f"Error saving to JSON {self.output_path}: {e}", exc_info=True)
            raise

    def save_to_csv(self, packets: List[Dict]):
        try:
            self.csv_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.csv_path, 'w', newline='', encoding='utf-8') as f:
                writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, extrasaction='ignore')
                writer.writeheader()
                writer.writerows(packets)

            self.stats['csv_files_saved'] += 1
            logger.info(f"Saved {len(packets)} packets to CSV: {self.csv_path}")

        except OSError as e:
            self.stats['io_errors'] += 1
            logger.error(f"Error saving to CSV {self.csv_path}: {e}", exc_info=True)
            raise

    def get_stats(self) -> dict:
        """Get saver statistics."""
        return self.stats.copy()
