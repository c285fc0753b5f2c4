"""Built-in plugins shipped with skipsetup."""
