from collectai.config import get_settings
from collectai.services.case_service import CaseService
from collectai.services.communication_service import CommunicationService


def get_communication_service() -> CommunicationService:
    return CommunicationService()


def get_case_service() -> CaseService:
    return CaseService()


def get_model_router():
    from collectai.services.model_router import ModelRouter
    return ModelRouter.from_settings(get_settings())


def get_cost_tracker():
    from collectai.services.cost_tracker import CostTracker
    return CostTracker(get_settings())
