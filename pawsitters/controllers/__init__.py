"""
Resource controllers on top of BaseController.

Each is constructed per request with the request's UnitOfWork and the
process-wide MetadataRegistry:

    async with UnitOfWork(session_factory) as uow:
        pets = PetController(uow, registry)
        await pets.create_pet(user_id, payload)
"""
from pawsitters.controllers.address import AddressController
from pawsitters.controllers.base import BaseController, RequestState
from pawsitters.controllers.booking import BookingController
from pawsitters.controllers.breed import BreedController
from pawsitters.controllers.certification import CertificationController
from pawsitters.controllers.pet import PetController
from pawsitters.controllers.review import ReviewController
from pawsitters.controllers.role import RoleController
from pawsitters.controllers.species import SpeciesController
from pawsitters.controllers.user import UserController

__all__ = [
    "AddressController",
    "BaseController",
    "BookingController",
    "BreedController",
    "CertificationController",
    "PetController",
    "RequestState",
    "ReviewController",
    "RoleController",
    "SpeciesController",
    "UserController",
]
