"""
Whiteflag request lifecycle.

- **state_machine.py**: Validates and applies transitions, persists them and
  returns the notifications they produce as intents.
- **intents.py**: Notification intents handed to the Discord layer.
- **errors.py**: Rejections, each with a message for the member who acted.
"""
