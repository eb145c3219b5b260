"""Pure domain rules for the kernel: time, numbering, journal line checks."""
