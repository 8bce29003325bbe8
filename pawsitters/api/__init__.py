from pawsitters.api.app import create_app, get_registry, get_uow
from pawsitters.api.errors import error_response, register_exception_handlers, require_json
