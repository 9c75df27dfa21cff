# Service instances bound to the process-wide database; shared by the HTTP
# routes, the MQTT bridge and the CoAP server.
from iotdash.database import db
from iotdash.services.auth_service import AuthService
from iotdash.services.channel_service import ChannelService
from iotdash.services.data_service import DataService

auth_service = AuthService(db)
channel_service = ChannelService(db, auth_service)
data_service = DataService(db, auth_service)
