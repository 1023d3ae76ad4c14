# Django discovers the app's models through this module.
from api.activity.models import ActivityLog  # noqa: F401
from api.booking.models import Booking, BookingExtension  # noqa: F401
from api.conversation.models import Conversation, Message  # noqa: F401
from api.document.models import Document  # noqa: F401
from api.integration.models import Integration  # noqa: F401
from api.invoice.models import Invoice  # noqa: F401
from api.promo.models import PromoCode, PromoCodeUsage  # noqa: F401
from api.review.models import Review  # noqa: F401
from api.user.models import User  # noqa: F401
from api.vehicle.models import Vehicle  # noqa: F401
