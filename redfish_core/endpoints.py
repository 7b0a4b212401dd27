"""Canonical Redfish paths and header names used by the request engine.

Only the endpoints the engine itself touches live here. Resource paths used by
callers are passed through untouched.
"""

SERVICE_ROOT = "/redfish/v1"
SESSION_SERVICE = "/redfish/v1/SessionService"
SESSIONS = "/redfish/v1/SessionService/Sessions"

AUTH_TOKEN_HEADER = "X-Auth-Token"
ODATA_VERSION_HEADER = "OData-Version"
ODATA_VERSION = "4.0"
RETRY_AFTER_HEADER = "Retry-After"
LOCATION_HEADER = "Location"

MEMBERS_KEY = "Members"
NEXT_LINK_KEY = "Members@odata.nextLink"
ODATA_ID_KEY = "@odata.id"
