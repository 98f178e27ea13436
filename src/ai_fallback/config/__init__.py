# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .defaults import *  # noqa: F401,F403
from .settings import FallbackSettings

__all__ = ["FallbackSettings"]
