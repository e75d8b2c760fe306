# File: src/parkinglot/main.py
"""
Main application entry point for the Parking Allocation Engine

Builds the facility from configuration (YAML file, .env / environment
variables, or the built-in defaults), then runs a scripted day of traffic
through the command processor and prints the resulting report.
"""

from datetime import timedelta
from typing import List, Optional
import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from .config import ParkingSystemConfig
from .domain.models import UserRole, VehicleType
from .application.dtos import ExitRequestDTO, ParkingRequestDTO, ReservationRequestDTO
from .application.commands import (
    CheckViolationsCommand, CommandProcessor, ExitVehicleCommand,
    JoinWaitlistCommand, ParkVehicleCommand, ReserveSpotCommand,
)
from .application.parking_service import ParkingService
from .infrastructure.factories import ParkingSystemFactory


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """Setup application logging configuration"""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(os.path.join(log_dir, 'parkinglot.log')))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )
    return logging.getLogger("parkinglot")


def load_config(config_path: Optional[str] = None) -> ParkingSystemConfig:
    if config_path:
        return ParkingSystemConfig.from_yaml(config_path)
    load_dotenv()
    return ParkingSystemConfig.from_env()


def run_demo(service: ParkingService, logger: logging.Logger) -> None:
    """Drive a short scripted session through the command processor"""
    processor = CommandProcessor(service)

    service.register_user("U1", "Alice", UserRole.REGULAR_USER)
    service.register_user("U2", "Bob", UserRole.REGULAR_USER)
    service.register_user("U3", "Carol", UserRole.STAFF)

    arrivals = [
        ParkingRequestDTO(license_plate="ABC123", vehicle_type="CAR", owner_id="U1"),
        ParkingRequestDTO(license_plate="EV001", vehicle_type="ELECTRIC_VEHICLE", owner_id="U2", preferred_zone_id="EV"),
        ParkingRequestDTO(license_plate="BIKE01", vehicle_type="BIKE"),
        ParkingRequestDTO(license_plate="TRK900", vehicle_type="TRUCK", owner_id="U3"),
    ]
    for result in processor.process_batch([ParkVehicleCommand(request) for request in arrivals]):
        logger.info(f"{result.command_type}: {result.data.get('message') if result.data else result.error_message}")

    print(service.availability_text())

    now = service.lot.snapshot().generated_at
    reservation = ReservationRequestDTO(
        user_id="U3",
        license_plate="VAN777",
        zone_id="EV",
        start_time=now,
        end_time=now + timedelta(hours=2),
    )
    service.register_vehicle("VAN777", VehicleType.CAR, "U3")
    reserve_result = processor.process(ReserveSpotCommand(reservation))
    logger.info(f"Reservation: {reserve_result.data.get('message') if reserve_result.data else reserve_result.error_message}")

    processor.process(JoinWaitlistCommand("U1", "EV"))
    processor.process(CheckViolationsCommand())

    departures = [ExitRequestDTO(license_plate=plate) for plate in ("ABC123", "EV001")]
    for result in processor.process_batch([ExitVehicleCommand(request) for request in departures]):
        if result.data:
            logger.info(f"Exit {result.data['license_plate']}: fee {result.data['fee']}, paid {result.data['paid']}")

    undo = processor.undo_last()
    logger.info(f"Undo last reservation: {undo.success}")

    print(service.generate_report())
    print(f"Loyalty points for U1: {service.get_loyalty_points('U1')}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Parking facility allocation and reservation engine")
    parser.add_argument("--config", help="Path to a YAML configuration file")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument("--log-dir", default=None, help="Also write the log to parkinglot.log in this directory")
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        setup_logging().error(f"Invalid configuration: {e}")
        return 2

    logger = setup_logging(args.log_level or config.log_level, args.log_dir)
    logger.info(f"Starting {config.lot_name}")

    service = ParkingSystemFactory(config).create_service()
    run_demo(service, logger)
    return 0


if __name__ == "__main__":
    sys.exit(main())
