__codename__ = "PATCHBAY"
__version__ = "0.4.0"
__tagline__ = "Model replies in, file edits out."

BANNER = r"""
  ___  _ _____ ___ _  _ ___   _ __   __
 | _ \/_\_   _/ __| || | _ ) /_\\ \ / /
 |  _/ _ \| || (__| __ | _ \/ _ \\ V /
 |_|/_/ \_\_| \___|_||_|___/_/ \_\|_|
"""
