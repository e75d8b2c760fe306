# File: src/parkinglot/application/commands.py
"""
Command Pattern Implementation for the parking service

Each operator action is a command object that can be validated, executed
against a ParkingService, logged in a history and, where it makes sense,
undone.

Command Types:
1. Parking Commands - vehicle entry and exit
2. Reservation Commands - booking, cancellation, waitlist
3. Enforcement Commands - violation checks
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
import logging
import uuid

from ..domain.models import ParkingError
from .dtos import ExitRequestDTO, ParkingRequestDTO, ReservationRequestDTO
from .parking_service import ParkingService, ParkingServiceError


# ============================================================================
# COMMAND INTERFACES AND BASE CLASSES
# ============================================================================

@dataclass
class CommandResult:
    """Outcome of executing or undoing a command"""
    success: bool
    command_id: str
    command_type: str
    executed_at: datetime
    data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "command_id": self.command_id,
            "command_type": self.command_type,
            "executed_at": self.executed_at.isoformat(),
            "data": self.data,
            "error_message": self.error_message,
        }


class Command(ABC):
    """
    Abstract base class for all commands
    Commands are named in the imperative (e.g., ParkVehicleCommand).
    """

    def __init__(self, executed_by: Optional[str] = None, command_id: Optional[str] = None):
        self.command_id = command_id or str(uuid.uuid4())
        self.executed_by = executed_by or "system"
        self.executed_at: Optional[datetime] = None
        self.logger = logging.getLogger(self.__class__.__name__)

    def execute(self, service: ParkingService) -> CommandResult:
        is_valid, errors = self.validate()
        if not is_valid:
            return self._result(False, error=f"Validation failed: {'; '.join(errors)}")

        self.logger.info(f"Executing {self.get_description()} for {self.executed_by}")
        try:
            success, data, error = self._run(service)
        except (ParkingError, ParkingServiceError, ValueError) as e:
            self.logger.error(f"Error executing {self.get_description()}: {e}")
            return self._result(False, error=str(e))

        self.executed_at = datetime.now()
        return self._result(success, data=data, error=error)

    @abstractmethod
    def _run(self, service: ParkingService) -> Tuple[bool, Optional[Dict[str, Any]], Optional[str]]:
        """Perform the operation; returns (success, data, error message)"""
        pass

    def validate(self) -> Tuple[bool, List[str]]:
        return True, []

    def can_undo(self) -> bool:
        return False

    def undo(self, service: ParkingService) -> CommandResult:
        return self._result(False, error=f"{self.get_description()} does not support undo")

    def get_description(self) -> str:
        return self.__class__.__name__.replace("Command", "")

    def _result(self, success: bool, data: Optional[Dict[str, Any]] = None, error: Optional[str] = None) -> CommandResult:
        return CommandResult(
            success=success,
            command_id=self.command_id,
            command_type=self.__class__.__name__,
            executed_at=self.executed_at or datetime.now(),
            data=data,
            error_message=error,
        )


# ============================================================================
# PARKING COMMANDS
# ============================================================================

class ParkVehicleCommand(Command):
    """Command: Park a vehicle"""

    def __init__(self, request: ParkingRequestDTO, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.request = request

    def _run(self, service: ParkingService):
        result = service.park_vehicle(self.request)
        return result.success, result.to_dict(), None if result.success else result.message

    def get_description(self) -> str:
        return f"Park {self.request.license_plate}"


class ExitVehicleCommand(Command):
    """Command: Release a vehicle's spot and collect its fee"""

    def __init__(self, request: ExitRequestDTO, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.request = request

    def _run(self, service: ParkingService):
        result = service.exit_vehicle(self.request)
        return result.success, result.to_dict(), None if result.success else result.message

    def get_description(self) -> str:
        return f"Exit {self.request.license_plate}"


# ============================================================================
# RESERVATION COMMANDS
# ============================================================================

class ReserveSpotCommand(Command):
    """
    Command: Reserve a spot
    Can be undone by cancelling the reservation it created
    """

    def __init__(self, request: ReservationRequestDTO, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.request = request
        self.reservation_id: Optional[str] = None

    def _run(self, service: ParkingService):
        result = service.make_reservation(self.request)
        if result.success:
            self.reservation_id = result.reservation_id
        return result.success, result.to_dict(), None if result.success else result.message

    def can_undo(self) -> bool:
        return self.reservation_id is not None

    def undo(self, service: ParkingService) -> CommandResult:
        if not self.can_undo():
            return super().undo(service)
        released = service.cancel_reservation(self.reservation_id)
        data = {"reservation_id": self.reservation_id, "released": released}
        self.reservation_id = None
        return self._result(True, data=data)

    def get_description(self) -> str:
        return f"Reserve in zone {self.request.zone_id} for {self.request.license_plate}"


class CancelReservationCommand(Command):
    def __init__(self, reservation_id: str, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.reservation_id = reservation_id

    def validate(self) -> Tuple[bool, List[str]]:
        if not self.reservation_id:
            return False, ["Reservation id is required"]
        return True, []

    def _run(self, service: ParkingService):
        released = service.cancel_reservation(self.reservation_id)
        return True, {"reservation_id": self.reservation_id, "released": released}, None


class JoinWaitlistCommand(Command):
    def __init__(self, user_id: str, zone_id: str, executed_by: Optional[str] = None):
        super().__init__(executed_by)
        self.user_id = user_id
        self.zone_id = zone_id

    def _run(self, service: ParkingService):
        added = service.join_waitlist(self.user_id, self.zone_id)
        return True, {"user_id": self.user_id, "zone_id": self.zone_id, "added": added}, None


# ============================================================================
# ENFORCEMENT COMMANDS
# ============================================================================

class CheckViolationsCommand(Command):
    def _run(self, service: ParkingService):
        report = service.check_violations()
        return True, report.to_dict(), None


# ============================================================================
# COMMAND PROCESSOR
# ============================================================================

class CommandProcessor:
    """
    Executes commands and keeps a bounded history for undo
    """

    def __init__(self, service: ParkingService, max_history_size: int = 1000):
        self.service = service
        self.logger = logging.getLogger(self.__class__.__name__)
        self.command_history: List[Command] = []
        self.max_history_size = max_history_size

    def process(self, command: Command) -> CommandResult:
        self.logger.info(f"Processing command: {command.get_description()}")
        result = command.execute(self.service)
        if result.success:
            self.command_history.append(command)
            if len(self.command_history) > self.max_history_size:
                self.command_history.pop(0)
        else:
            self.logger.warning(f"{command.get_description()} failed: {result.error_message}")
        return result

    def process_batch(self, commands: List[Command]) -> List[CommandResult]:
        return [self.process(command) for command in commands]

    def undo_last(self) -> CommandResult:
        """Undo the most recent command that supports undo"""
        for index in range(len(self.command_history) - 1, -1, -1):
            command = self.command_history[index]
            if command.can_undo():
                del self.command_history[index]
                return command.undo(self.service)
        return CommandResult(
            success=False,
            command_id="",
            command_type="Undo",
            executed_at=datetime.now(),
            error_message="No commands to undo",
        )
