class WorldQueue:
    """Worlds waiting to be converted, in the order they were queued."""

    def __init__(self):
        self._queue = {}

    def add(self, manager):
        if manager.world_name in self._queue:
            return False
        self._queue[manager.world_name] = manager
        return True

    def remove(self, world_name):
        return self._queue.pop(world_name, None) is not None

    def is_empty(self):
        return not self._queue

    def get_queue(self):
        return list(self._queue.values())

    def clear(self):
        self._queue.clear()

    def __len__(self):
        return len(self._queue)

    def __contains__(self, world_name):
        return world_name in self._queue
