# Models package — import all models here so Alembic can discover them.

from contractor_crm.models.user import User  # noqa: F401
from contractor_crm.models.lead import Lead  # noqa: F401
from contractor_crm.models.client import Client  # noqa: F401
from contractor_crm.models.deal import Deal  # noqa: F401
from contractor_crm.models.activity import Activity  # noqa: F401
from contractor_crm.models.crm_settings import CrmSettings  # noqa: F401
