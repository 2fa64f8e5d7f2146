# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# CANCELLATION
# -----------------------------------------------------------------------------
# SIGINT only flips a token. The runner looks at the token at fixed
# checkpoints and emits the cleanup guidance as ordinary code.
# -----------------------------------------------------------------------------

import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager


class CancellationToken:
    """A one-way flag shared between the signal handler and the build loop."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "interrupted") -> None:
        self.reason = reason
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


@contextmanager
def interrupt_guard(token: CancellationToken) -> Iterator[CancellationToken]:
    """
    Route SIGINT to the token for the duration of the block.

    The previous handler is restored on exit. Outside the main thread signal
    handlers cannot be installed, so the token is yielded untouched.
    """
    if threading.current_thread() is not threading.main_thread():
        yield token
        return

    def _handler(signum, frame):
        token.cancel("SIGINT")

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)
