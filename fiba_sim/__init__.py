"""Basketball group stage + knockout tournament simulator."""
