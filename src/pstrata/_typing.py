"""Shared type aliases for the pstrata package."""

import numpy as np
import pandas as pd

# Array-like inputs accepted by the public API.
ArrayLike = np.ndarray | pd.Series | list

# Intermediate-outcome value of one (stratum, treatment) cell; ``None``
# is the wildcard.
CellValue = int | None
