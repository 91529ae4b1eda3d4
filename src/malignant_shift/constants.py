"""
Constants for loading and analysing paired malignant/total count matrices.

Contains the header tokens used to recognise replicate columns and the
numeric defaults shared by the detection methods.
"""

# Measurement kinds
MALIGNANT = "malignant"
TOTAL = "total"
KINDS = (MALIGNANT, TOTAL)

# Header tokens mapped to a measurement kind (lower-case)
KIND_ALIASES = {
    "malignant": MALIGNANT,
    "malig": MALIGNANT,
    "mal": MALIGNANT,
    "tumor": MALIGNANT,
    "tumour": MALIGNANT,
    "total": TOTAL,
    "tot": TOTAL,
    "all": TOTAL,
}

# Replicate token, e.g. rep1 / r1 / R1 / replicate1
REPLICATE_PATTERN = r"^(?:replicate|rep|r)(\d+)$"

N_REPLICATES = 4
N_TIMEPOINTS = 2

# Monte Carlo empirical p-values
N_MC_SAMPLES = 10_000
DEFAULT_SEED = 42

# Beta prior fit: starting guess (shape1, shape2) and minimum sample size
PRIOR_START = (1.0, 10.0)
MIN_PRIOR_PROPORTIONS = 3

FDR_THRESHOLD = 0.05

# Method names used as column labels in the comparison table
METHOD_SHRINKAGE = "Beta-Binomial Shrinkage"
METHOD_RATIO = "Ratio Imputation"
METHOD_CHI2 = "Contingency Chi2"
METHODS = (METHOD_SHRINKAGE, METHOD_RATIO, METHOD_CHI2)
