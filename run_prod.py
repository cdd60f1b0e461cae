#!/usr/bin/env python
"""Production server: no hot reload."""

import os

os.environ["PASSAGEMARK_RELOAD"] = "0"

from passagemark import main

if __name__ in {"__main__", "__mp_main__"}:
    main()
