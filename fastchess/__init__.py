"""Building blocks for UCI chess engines: time controls, options, CPU affinity, EPD opening books, engine processes and a compliance check."""

__version__ = "1.4.0"