"""Process-scoped services.

``build_services`` wires every store and engine together once per app; the
FastAPI lifespan keeps the result on ``app.state.services`` and handlers
receive it through ``lumen.api.deps.get_services``.
"""

import logging
from dataclasses import dataclass

from lumen.auth.manager import AuthManager
from lumen.auth.rate_limiter import LoginRateLimiter
from lumen.auth.sessions import SessionStore
from lumen.auth.users import UserStore
from lumen.config import Settings
from lumen.content.index import ContentIndex
from lumen.content.models import Kind
from lumen.content.store import FrontmatterStore
from lumen.hooks import HookBus
from lumen.media.references import MediaReferences
from lumen.media.registry import MediaRegistry
from lumen.render.resolver import Resolver
from lumen.render.templates import TemplateEngine
from lumen.site.menu import MenuStore
from lumen.site.settings import SettingsStore
from lumen.static.exporter import StaticExporter
from lumen.themes.installer import ThemeInstaller
from lumen.themes.marketplace import MarketplaceClient
from lumen.themes.registry import ThemeRegistry

logger = logging.getLogger(__name__)


@dataclass
class Services:
    config: Settings
    hooks: HookBus
    store: FrontmatterStore
    index: ContentIndex
    settings: SettingsStore
    menu: MenuStore
    registry: ThemeRegistry
    installer: ThemeInstaller
    marketplace: MarketplaceClient
    engine: TemplateEngine
    resolver: Resolver
    exporter: StaticExporter
    users: UserStore
    sessions: SessionStore
    limiter: LoginRateLimiter
    auth: AuthManager
    media: MediaRegistry
    references: MediaReferences


def build_services(config: Settings) -> Services:
    data_dir = config.data_dir
    hooks = HookBus()
    store = FrontmatterStore(data_dir, hooks)
    index = ContentIndex(store)
    settings = SettingsStore(data_dir)
    menu = MenuStore(data_dir)
    registry = ThemeRegistry(config.themes_dir, settings)
    settings.theme_exists = registry.exists
    engine = TemplateEngine()
    registry.add_listener(engine.clear)
    resolver = Resolver(index, settings, menu, registry, engine, hooks)
    users = UserStore(data_dir)
    sessions = SessionStore(data_dir, config.session_ttl_seconds)
    limiter = LoginRateLimiter(config.login_max_attempts, config.login_window_seconds)
    media = MediaRegistry(data_dir)
    return Services(
        config=config,
        hooks=hooks,
        store=store,
        index=index,
        settings=settings,
        menu=menu,
        registry=registry,
        installer=ThemeInstaller(registry),
        marketplace=MarketplaceClient(
            config.marketplace_url, config.marketplace_cache_seconds, config.marketplace_timeout_seconds
        ),
        engine=engine,
        resolver=resolver,
        exporter=StaticExporter(resolver, index, registry, settings, data_dir),
        users=users,
        sessions=sessions,
        limiter=limiter,
        auth=AuthManager(users, sessions, limiter),
        media=media,
        references=MediaReferences(index, store),
    )


async def startup(services: Services) -> None:
    """Prepare the data directory, pick the active theme and seed defaults."""
    config = services.config
    config.data_dir.mkdir(parents=True, exist_ok=True)
    services.store.ensure_dirs()
    services.media.ensure_dirs()
    services.settings.load()
    services.menu.load()
    services.sessions.load()
    services.users.load()

    services.registry.seed_default()
    theme = services.registry.initialize()
    logger.info(f"Active theme: {theme.name}")

    await services.auth.bootstrap(config.default_admin_username, config.default_admin_password)

    if not services.index.pages():
        await services.store.create(
            Kind.PAGE,
            {"title": "Home", "slug": "home", "status": "published", "pageType": "normal", "body": "Welcome to your new site."},
        )
        logger.info("Created default home page")
