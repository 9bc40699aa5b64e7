import csv

import numpy as np


def _vec(values, n):
    if values is None:
        return [float("nan")] * n
    a = np.array(values, dtype=float).reshape(-1).tolist()
    if len(a) < n:
        a += [float("nan")] * (n - len(a))
    return a[:n]


class CsvWriter:
    HEADER = [
        "stamp", "tag_id", "frame_id",
        "x", "y", "z",
        "qx", "qy", "qz", "qw",
        "distance",
        *[f"cov_{i:02d}" for i in range(36)],
    ]

    def __init__(self, csv_path: str):
        self.csv_path = csv_path
        self._opened = False
        self._fh = None
        self._w = None

    def open(self):
        self._fh = open(self.csv_path, "w", newline="")
        self._w = csv.writer(self._fh)
        self._w.writerow(self.HEADER)
        self._opened = True

    @staticmethod
    def _row(stamp, tag_id, frame_id, position, orientation, distance, covariance):
        return [
            f"{stamp:.6f}", tag_id, frame_id,
            *_vec(position, 3),
            *_vec(orientation, 4),
            f"{distance:.6f}",
            *_vec(covariance, 36),
        ]

    def append(self, stamp, tag_id, frame_id, position, orientation, distance, covariance):
        self._w.writerow(self._row(stamp, tag_id, frame_id, position, orientation, distance, covariance))
        self._fh.flush()

    def close(self):
        if self._opened and self._fh:
            self._fh.close()
            self._opened = False
            self._fh = None
            self._w = None
