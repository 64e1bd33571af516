"""
Whiteflag - Staff-Reviewed Raid Protection for Discord

Members request a temporary "white flag" for their tribe on a game cluster;
staff approve or deny it from a review channel. Approved grants expire on
their own after a fixed duration, or staff end them early with a public
open-season announcement.

Core Components:

- **Lifecycle**: Synchronous state machine (pending, active, denied, expired,
  ended_early) that validates every transition and returns notification intents
- **Storage**: Flat JSON files written atomically; every operation reloads
  from disk before acting
- **Scheduler**: In-memory expiry timers rebuilt from disk on startup, plus a
  periodic fallback sweep
- **Discord layer**: Slash commands, persistent buttons and modals that feed
  events into the service and deliver its intents best-effort
"""
