from researcher_hut.models.user import User
from researcher_hut.models.admin import AdminSettings
