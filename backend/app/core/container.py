from dependency_injector import containers, providers

from app.core.config import configs as default_configs
from app.core.database import Database
from app.services.streaming_service import StreamingPolicy, utc_now


class Container(containers.DeclarativeContainer):
    configs = providers.Object(default_configs)

    db = providers.Singleton(
        Database,
        db_url=configs.provided.DATABASE_URI,
        echo=configs.provided.DB_ECHO,
    )

    streaming_policy = providers.Singleton(StreamingPolicy.from_configs, configs=configs)

    clock = providers.Object(utc_now)
