class VmConfigError(ValueError):
    """
    Raised when a virtual machine configuration cannot be turned into a
    deployable set of resources. The message names the offending setting.
    """
