"""Identifier generators: time-ordered 64-bit flake ids and ULIDs."""

from __future__ import annotations

import abc
import ipaddress
import os
import random
import socket
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FLAKE_START = datetime(2020, 1, 1, tzinfo=timezone.utc)

_TIME_BITS = 39
_SEQUENCE_BITS = 8
_MACHINE_BITS = 16
_SEQUENCE_MASK = (1 << _SEQUENCE_BITS) - 1
_UNIT_NS = 10_000_000  # 10 ms

_CROCKFORD = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ULID_MAX_MS = (1 << 48) - 1
_ENTROPY_BITS = 80
_ENTROPY_MAX = (1 << _ENTROPY_BITS) - 1
_MAX_INCREMENT = (1 << 32) - 1


def _to_ms(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def _is_private_ipv4(addr: ipaddress.IPv4Address) -> bool:
    a, b = addr.packed[0], addr.packed[1]
    return (
        a == 10
        or (a == 172 and 16 <= b < 32)
        or (a == 192 and b == 168)
        or (a == 169 and b == 254)
    )


def _default_machine_id() -> int:
    try:
        addr = ipaddress.ip_address(socket.gethostbyname(socket.gethostname()))
    except (OSError, ValueError):
        addr = None
    if isinstance(addr, ipaddress.IPv4Address) and _is_private_ipv4(addr):
        return int(addr) & 0xFFFF
    return os.getpid() & 0xFFFF


class IDGenerator(abc.ABC):
    """Something that produces a string identifier for a moment in time."""

    @abc.abstractmethod
    def make(self, now: datetime) -> str:
        """Return a new identifier."""


class SonyFlakeGenerator:
    """Thread-safe 63-bit ids: 39 bits of 10 ms ticks, 8 of sequence, 16 of machine."""

    def __init__(self, start_time: datetime = _FLAKE_START, machine_id: int | None = None) -> None:
        if start_time.tzinfo is None:
            start_time = start_time.replace(tzinfo=timezone.utc)
        if start_time > datetime.now(timezone.utc):
            raise ValueError("start time is ahead of now")
        if machine_id is None:
            machine_id = _default_machine_id()
        if not 0 <= machine_id < (1 << _MACHINE_BITS):
            raise ValueError(f"machine id {machine_id} out of range")
        self._start_ns = (start_time - _EPOCH) // timedelta(microseconds=1) * 1000
        self.machine_id = machine_id
        self._lock = threading.Lock()
        self._elapsed = 0
        self._sequence = _SEQUENCE_MASK

    def _current_elapsed(self) -> int:
        return (time.time_ns() - self._start_ns) // _UNIT_NS

    def next_id(self) -> int:
        """Return a positive id that increases roughly in time order."""
        with self._lock:
            current = self._current_elapsed()
            if self._elapsed < current:
                self._elapsed = current
                self._sequence = 0
            else:
                self._sequence = (self._sequence + 1) & _SEQUENCE_MASK
                if self._sequence == 0:
                    self._elapsed += 1
                    overtime = self._elapsed - current
                    time.sleep(overtime * _UNIT_NS / 1e9)
            if self._elapsed >= 1 << _TIME_BITS:
                return random.getrandbits(63)
            return (
                self._elapsed << (_SEQUENCE_BITS + _MACHINE_BITS)
                | self._sequence << _MACHINE_BITS
                | self.machine_id
            )


def _encode_ulid(ms: int, entropy: int) -> str:
    value = (ms << _ENTROPY_BITS) | entropy
    chars = []
    for _ in range(26):
        chars.append(_CROCKFORD[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


class ULIDGenerator(IDGenerator):
    """ULIDs that are strictly increasing within the same millisecond."""

    def __init__(self, random_bytes: Callable[[int], bytes] = os.urandom) -> None:
        self._random_bytes = random_bytes
        self._lock = threading.Lock()
        self._ms: int | None = None
        self._entropy = 0

    def make(self, now: datetime) -> str:
        ms = _to_ms(now)
        if not 0 <= ms <= _ULID_MAX_MS:
            raise ValueError(f"timestamp {ms} out of ULID range")
        with self._lock:
            if self._ms == ms:
                step = 1 + int.from_bytes(self._random_bytes(8), "big") % _MAX_INCREMENT
                entropy = self._entropy + step
                if entropy > _ENTROPY_MAX:
                    raise OverflowError("monotonic ULID entropy overflow")
            else:
                entropy = int.from_bytes(self._random_bytes(10), "big")
            self._ms = ms
            self._entropy = entropy
            return _encode_ulid(ms, entropy)


_default_ulid = ULIDGenerator()


class InlineULIDGenerator(IDGenerator):
    """ULIDs stamped with the current time; the given moment is ignored."""

    def make(self, now: datetime) -> str:
        return _default_ulid.make(datetime.now(timezone.utc))


default_flake_generator = SonyFlakeGenerator()


def generate_id() -> int:
    """Return the next id from the process-wide flake generator."""
    return default_flake_generator.next_id()


def hour_from_millis(ms: int) -> int:
    """Return the UTC hour of a millisecond timestamp."""
    return (_EPOCH + timedelta(milliseconds=ms)).hour