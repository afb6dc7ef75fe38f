# hemolink/models/__init__.py
from hemolink.models.hospital import Hospital, HospitalType
from hemolink.models.donor import Donor, DonorAvailability
from hemolink.models.demand import DemandUnit, DemandStatus
from hemolink.models.inventory import (
    InventoryLedger,
    InventoryItem,
    DailyUsage,
    UsageEntry,
    StockSnapshot,
    ItemKind,
    ItemStatus,
)
from hemolink.models.proposal import Proposal, ProposalStatus
from hemolink.models.appointment import Appointment, AppointmentStatus
