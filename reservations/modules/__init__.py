"""Domain modules package. Importing it registers every model on the metadata."""

from reservations.modules.audit import models as audit_models  # noqa: F401
from reservations.modules.booking import models as booking_models  # noqa: F401
from reservations.modules.orders import models as orders_models  # noqa: F401
from reservations.modules.refunds import models as refunds_models  # noqa: F401
from reservations.modules.stations import models as stations_models  # noqa: F401
