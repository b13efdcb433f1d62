"""Scheduling core -- capacity evaluation, conflict detection, and the capacity notifier.

Components are constructed once in the application lifespan and handed to
request handlers through app.state:

- CapacityEvaluator: per-account concurrent-meeting counts and load balancing
- ConflictDetector: room, capacity and participant conflicts plus alternative slots
- CapacityNotifier: reacts to provider-account changes and keeps a notification queue
"""
