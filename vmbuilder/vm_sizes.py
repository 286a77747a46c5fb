"""VM size capabilities.

Sizes are plain Azure size names (e.g. `Standard_D2s_v3`). Only the
capabilities the builder validates against are tracked here.
"""

BASIC_A0 = "Basic_A0"
STANDARD_A2_V2 = "Standard_A2_v2"
STANDARD_B1S = "Standard_B1s"
STANDARD_B2S = "Standard_B2s"
STANDARD_D2S_V3 = "Standard_D2s_v3"
STANDARD_D4S_V3 = "Standard_D4s_v3"
STANDARD_D2S_V5 = "Standard_D2s_v5"
STANDARD_E8AS_V5 = "Standard_E8as_v5"
STANDARD_F2S_V2 = "Standard_F2s_v2"

# Basic, A-series and burstable B-series sizes lack accelerated networking.
ACCELERATED_NETWORKING_UNSUPPORTED_PREFIXES = (
    "Basic_",
    "Standard_A",
    "Standard_B",
)

# Single vCPU sizes from otherwise supported families.
ACCELERATED_NETWORKING_UNSUPPORTED_SIZES = frozenset(
    {
        "Standard_D1",
        "Standard_D1_v2",
        "Standard_DS1",
        "Standard_DS1_v2",
        "Standard_F1",
        "Standard_F1s",
    }
)


def supports_accelerated_networking(size: str) -> bool:
    if size in ACCELERATED_NETWORKING_UNSUPPORTED_SIZES:
        return False
    return not size.startswith(ACCELERATED_NETWORKING_UNSUPPORTED_PREFIXES)
