# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Allow ``python -m couchdb_repl``."""

import sys

from .cli import main

sys.exit(main())
