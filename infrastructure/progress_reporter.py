from typing import Optional, TextIO

from tqdm import tqdm

from application.dtos import TransferProgress


class ProgressReporter:
    """
    Progress sink shared by every concurrent transfer.

    One tqdm bar per transfer; tqdm serializes writes from concurrent bars.
    The output is advisory only.
    """

    def __init__(self, stream: Optional[TextIO] = None, enabled: bool = True):
        self.stream = stream
        self.enabled = enabled

    def bar(self, message: str) -> tqdm:
        return tqdm(
            desc=message,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            file=self.stream,
            disable=not self.enabled,
        )

    @staticmethod
    def advance(bar: tqdm, progress: TransferProgress) -> None:
        if progress.total and bar.total != progress.total:
            bar.total = progress.total
        bar.update(progress.transferred - bar.n)
