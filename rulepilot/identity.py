__version__ = "0.4.0"
__codename__ = "RULEPILOT"
__tagline__ = "Rules in, tasks out, humans in the loop."

BANNER = r"""
  ___      _     ___ _ _     _
 | _ \_  _| |___| _ (_) |___| |_
 |   / || | / -_)  _/ | / _ \  _|
 |_|_\\_,_|_\___|_| |_|_\___/\__|
"""
