"""In-memory object storage: descriptors hold framesets, framesets hold frames."""

from __future__ import annotations

import warnings
from typing import Callable, Generic, Iterable, TypeVar

import numpy as np

IMPOSSIBLE_ID = 0
MAX_NAME_LENGTH = 71

_IMAGE_SHAPE = (5, 2)

T = TypeVar("T")


class ObjectRef(Generic[T]):
    """A reference to a stored object that may be left uninitialised."""

    def __init__(self, target: T | None = None) -> None:
        self._target = target

    def valid(self) -> bool:
        """Return True when the reference points at an object."""
        return self._target is not None

    def get(self) -> T:
        """Return the referenced object or raise if there is none."""
        if self._target is None:
            raise RuntimeError("Reference is not initialized")
        return self._target

    def __bool__(self) -> bool:
        return self.valid()

    def __call__(self) -> T:
        return self.get()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._target!r})"


class ObjectID:
    """A named identifier; names longer than MAX_NAME_LENGTH are clipped."""

    def __init__(self, name: str = "") -> None:
        if len(name) > MAX_NAME_LENGTH:
            warnings.warn(
                "the length of string specified exceeds maximal possible "
                f"length {MAX_NAME_LENGTH} (clipped)",
                stacklevel=2,
            )
        self.name = name[:MAX_NAME_LENGTH]
        self.id = IMPOSSIBLE_ID

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ObjectID):
            return NotImplemented
        return type(self) is type(other) and (self.name, self.id) == (other.name, other.id)

    def __hash__(self) -> int:
        return hash((type(self), self.name, self.id))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, id={self.id})"


class FrameID(ObjectID):
    """Identifier of a frame inside a frameset."""


class FramesetID(ObjectID):
    """Identifier of a frameset inside an object descriptor."""


class ObjectDescriptorID(ObjectID):
    """Identifier of an object descriptor."""


class Frame:
    """A single frame holding image data."""

    def image(self) -> np.ndarray:
        """Return the frame image as a 5x2 float32 matrix of the values 0..9."""
        return np.arange(10, dtype=np.float32).reshape(_IMAGE_SHAPE)


def _make_ids(cls: type[ObjectID], prefix: str, count: int = 10) -> list:
    ids = []
    for number in range(count):
        new_id = cls(f"{prefix} = {number}")
        new_id.id = number
        ids.append(new_id)
    return ids


def _lookup(items: list, index: int, what: str):
    if not 0 <= index < len(items):
        raise IndexError(f"{what} id {index} is out of range")
    return items[index]


class Frameset:
    """A collection of frames."""

    def __init__(self, frames_count: int = 3) -> None:
        self._frames = [Frame() for _ in range(frames_count)]

    def frames_count(self) -> int:
        return len(self._frames)

    def frames_ids(self) -> list[FrameID]:
        """Return the ten frame identifiers ``frame id = 0`` .. ``frame id = 9``."""
        return _make_ids(FrameID, "frame id")

    def frame(self, frame_id: FrameID) -> ObjectRef[Frame]:
        """Return a reference to the frame addressed by ``frame_id.id``."""
        return ObjectRef(_lookup(self._frames, frame_id.id, "frame"))


class ObjectDescriptor:
    """A collection of framesets describing one object."""

    def __init__(self, framesets_count: int) -> None:
        self._framesets = [Frameset() for _ in range(framesets_count)]

    def framesets_count(self) -> int:
        return len(self._framesets)

    def framesets_ids(self) -> list[FramesetID]:
        """Return the ten frameset identifiers ``frameset id = 0`` .. ``frameset id = 9``."""
        return _make_ids(FramesetID, "frameset id")

    def frameset(self, frameset_id: FramesetID) -> ObjectRef[Frameset]:
        """Return a reference to the frameset addressed by ``frameset_id.id``."""
        return ObjectRef(_lookup(self._framesets, frameset_id.id, "frameset"))


def list_sum(values: Iterable[int]) -> int:
    """Add all elements of ``values``."""
    return sum(int(value) for value in values)


def test(x: int) -> int:
    """Return ``x + 5``."""
    print(f"Do nothing, x = {x}")
    return x + 5


test.__test__ = False  # keep test collectors from picking this up


def pipeline_middle_process(
    callback: Callable[[ObjectDescriptor, str, str], object],
) -> int:
    """Run ``callback`` on a 42-frameset descriptor with arguments "arg1", "arg2".

    Returns the callback's result as an int, or -1 when it returns None.
    """
    if not callable(callback):
        raise TypeError("Need a callable object")
    descriptor = ObjectDescriptor(42)
    result = callback(descriptor, "arg1", "arg2")
    return -1 if result is None else int(result)