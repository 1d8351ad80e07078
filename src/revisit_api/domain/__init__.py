"""Pure domain helpers with no persistence dependencies."""
