"""
User interface components for whiteflag.

- **console.py**: Interactive operator console (status, active grants, manual
  sweep, restart, shutdown) built on prompt_toolkit.
- **embeds.py**: Embeds for review posts, decisions and open-season
  announcements.
- **review_ui.py**: Persistent buttons and request/end-early modals.
"""
