"""Exceptions raised at the collection and persistence boundaries."""


class PylontechError(Exception):
    """Base class for analyzer errors."""


class DuplicateBatteryError(PylontechError):
    def __init__(self, battery_id: str):
        super().__init__(f"Battery {battery_id} is already loaded. Use a different file.")
        self.battery_id = battery_id


class StoreError(PylontechError):
    """The persistence store could not be read or written."""


class ImportFormatError(PylontechError):
    """An imported JSON document does not have the fleet export shape."""
