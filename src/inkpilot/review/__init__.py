"""Preview queue of pending AI candidates."""
