"""Pytest configuration and fixtures for BookOps tests.

Database-backed tests run against a throwaway SQLite file through aiosqlite.
The ``db`` fixture swaps it in as ``bookops.db.session.AsyncSessionFactory``
so every ``get_session()`` call in the code under test lands there.
"""

import uuid

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import bookops.db.session as session_module
from bookops.db.models import Account, Base, Build, UserRole
from bookops.server.auth import AuthContext


@pytest.fixture
async def db(tmp_path, monkeypatch):
    """Create a fresh schema in a temporary SQLite file and route sessions to it."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'bookops.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    monkeypatch.setattr(session_module, "AsyncSessionFactory", factory)
    yield factory
    await engine.dispose()


@pytest.fixture
def make_build(db):
    """Factory fixture that inserts a Build and returns it."""

    async def _make(name: str, region: str = "EMEA", **kwargs) -> Build:
        build = Build(id=uuid.uuid4(), name=name, region=region, created_by="seed", **kwargs)
        async with db() as session:
            session.add(build)
            await session.commit()
        return build

    return _make


@pytest.fixture
def make_account(db):
    """Factory fixture that inserts an Account row into a build."""

    async def _make(
        build: Build,
        sfdc_account_id: str,
        owner_id: str | None = None,
        owner_name: str | None = None,
        new_owner_id: str | None = None,
        new_owner_name: str | None = None,
        account_name: str | None = None,
        is_parent: bool = True,
        **kwargs,
    ) -> Account:
        account = Account(
            id=uuid.uuid4(),
            build_id=build.id,
            sfdc_account_id=sfdc_account_id,
            account_name=account_name or f"Account {sfdc_account_id}",
            is_parent=is_parent,
            owner_id=owner_id,
            owner_name=owner_name,
            new_owner_id=new_owner_id,
            new_owner_name=new_owner_name,
            **kwargs,
        )
        async with db() as session:
            session.add(account)
            await session.commit()
        return account

    return _make


@pytest.fixture
async def territory(make_build, make_account) -> dict:
    """Two EMEA builds and one NA build with a known set of clashes.

    EMEA (visible to an EMEA manager):
        001A  proposed owners differ                   -> high
        001B  proposed in one build only, same owner   -> medium, mixed state
        001C  same current owner, nothing proposed     -> no clash
        001D  current owners differ, nothing proposed  -> medium
    NA adds a third, conflicting assignment of 001A for global callers.
    """
    draft = await make_build("FY27 EMEA Draft", region="EMEA")
    alt = await make_build("FY27 EMEA Alternate", region="EMEA")
    na = await make_build("FY27 NA", region="NA")

    await make_account(
        draft, "001A", "u1", "Uma One", "u2", "Uri Two",
        account_name="Acme", hierarchy_bookings_arr_converted=250_000.0,
    )
    await make_account(
        alt, "001A", "u1", "Uma One", "u3", "Ula Three",
        account_name="Acme", hierarchy_bookings_arr_converted=250_000.0,
    )
    await make_account(na, "001A", "u9", "Noor Nine", account_name="Acme", arr=250_000.0)

    await make_account(draft, "001B", "u1", "Uma One", account_name="Beta", arr=40_000.0)
    await make_account(
        alt, "001B", "u1", "Uma One", "u1", "Uma One", account_name="Beta", arr=40_000.0
    )

    await make_account(draft, "001C", "u4", "Ivo Four", account_name="Gamma", arr=10_000.0)
    await make_account(alt, "001C", "u4", "Ivo Four", account_name="Gamma", arr=10_000.0)

    await make_account(draft, "001D", "u5", "Eda Five", account_name="Delta", arr=90_000.0)
    await make_account(alt, "001D", "u6", "Sam Six", account_name="Delta", arr=90_000.0)

    # Child rows never take part in detection
    await make_account(
        draft, "001A-CH", "u7", account_name="Acme Child", is_parent=False, parent_id="001A"
    )
    await make_account(
        alt, "001A-CH", "u8", account_name="Acme Child", is_parent=False, parent_id="001A"
    )

    return {"draft": draft, "alt": alt, "na": na}


@pytest.fixture
def revops() -> AuthContext:
    return AuthContext(user_id="rita", role=UserRole.REVOPS)


@pytest.fixture
def emea_manager() -> AuthContext:
    return AuthContext(user_id="ana", role=UserRole.SLM, region="EMEA")


@pytest.fixture
def na_manager() -> AuthContext:
    return AuthContext(user_id="nick", role=UserRole.FLM, region="NA")


@pytest.fixture
def unscoped_manager() -> AuthContext:
    return AuthContext(user_id="olga", role=UserRole.FLM)
