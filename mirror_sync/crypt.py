"""Encryption boundary between the engine and its collaborators."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import BinaryIO, Optional

from mirror_sync.item import Item


class Crypt(ABC):
    """Transforms content, metadata blobs and titles on their way to the remote."""

    @abstractmethod
    def encrypt_text(self, text: str) -> str:
        pass

    @abstractmethod
    def decrypt_text(self, text: str) -> str:
        pass

    @abstractmethod
    def encrypt_binary(self, name: str, data: BinaryIO, item: Item) -> BinaryIO:
        pass

    @abstractmethod
    def decrypt_binary(self, data: BinaryIO) -> BinaryIO:
        pass


@dataclass
class RemoteStreamData:
    """A readable remote stream plus the raw stream it was derived from."""

    raw: Optional[BinaryIO]
    data: BinaryIO

    def read(self, size: int = -1) -> bytes:
        return self.data.read(size)

    def close(self) -> None:
        self.data.close()
        if self.raw is not None and self.raw is not self.data:
            self.raw.close()

    def __enter__(self) -> "RemoteStreamData":
        return self

    def __exit__(self, exc_type, exc_value, exc_tb) -> None:
        self.close()
