from dependency_injector import containers, providers

from ledgerapi.config import Settings
from ledgerapi.database.session import database
from ledgerapi.services.checkin_service import CheckinService
from ledgerapi.services.commission_service import CommissionService
from ledgerapi.services.mall_service import MallService
from ledgerapi.services.payout_service import PayoutService
from ledgerapi.services.point_service import PointService
from ledgerapi.services.referral_service import ReferralService


class ConfigModule(containers.DeclarativeContainer):
    """Application configuration."""

    config = providers.Singleton(Settings)


class RepositoryModule(containers.DeclarativeContainer):
    """Unit-of-work 협력 객체 - 리포지토리는 서비스가 트랜잭션마다 생성"""

    database = providers.Object(database)


class ServiceModule(containers.DeclarativeContainer):
    """Service layer dependencies."""

    config = providers.DependenciesContainer()
    repositories = providers.DependenciesContainer()

    point_service = providers.Factory(PointService, database=repositories.database)
    checkin_service = providers.Factory(
        CheckinService, database=repositories.database, point_service=point_service
    )
    mall_service = providers.Factory(
        MallService, database=repositories.database, point_service=point_service
    )
    commission_service = providers.Factory(
        CommissionService, database=repositories.database, settings=config.config
    )
    payout_service = providers.Factory(PayoutService, database=repositories.database)
    referral_service = providers.Factory(
        ReferralService,
        database=repositories.database,
        settings=config.config,
        commission_service=commission_service,
        payout_service=payout_service,
    )


class Container(containers.DeclarativeContainer):
    """Application container."""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "ledgerapi.routers.health_router",
            "ledgerapi.routers.point_router",
            "ledgerapi.routers.checkin_router",
            "ledgerapi.routers.mall_router",
            "ledgerapi.routers.referral_router",
            "ledgerapi.routers.admin_router",
        ],
    )

    config = providers.Container(ConfigModule)
    repositories = providers.Container(RepositoryModule)
    services = providers.Container(
        ServiceModule, config=config, repositories=repositories
    )
