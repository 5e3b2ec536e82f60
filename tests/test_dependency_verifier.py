import asyncio

import pytest

from packfetch.exceptions import (
    APINotFoundError,
    APIRateLimitError,
    DependencyLoadingError,
    DistributionDeniedError,
    LoadingError,
    MinecraftVersionMismatchError,
    MissingRequiredDependenciesError,
    ModsVerificationError,
    UnsupportedLookupError,
)
from packfetch.models import (
    DependencyId,
    EnvRequirement,
    KnownEnvRequirement,
    ModContainer,
    SideInfo,
)
from packfetch.services.dependency_verifier import (
    ClosureSets,
    DependencyVerifier,
    verify_mods,
)

from conftest import MC_VERSION, FakeSite, config_mod, optional, required


def _curseforge():
    return FakeSite("curseforge", int, supports_version_lookup=False)


def _verify_one(site, limiter, mods, cfg_id, minecraft_version=MC_VERSION):
    verifier = DependencyVerifier(site, limiter, minecraft_version)
    result = asyncio.run(verifier.verify(mods))
    return result.verified.get(cfg_id), result.failures.get(cfg_id)


def test_closure_includes_ignored_and_substitutes():
    mods = {
        "a": config_mod(1, 10, ignored=[DependencyId.project(2)]),
        "b": config_mod(3, 30, substitute_for=[DependencyId.version(40)]),
    }
    closure = ClosureSets.build(mods)
    assert DependencyId.project(1) in closure
    assert DependencyId.version(10) in closure
    assert DependencyId.project(2) in closure
    assert DependencyId.version(40) in closure
    assert DependencyId.project(40) not in closure
    assert DependencyId.version(1) not in closure


def test_verified_mod(make_limiter):
    site = FakeSite()
    site.add_mod(
        "sodium", "v1", "Sodium",
        side_info=SideInfo(client=EnvRequirement.REQUIRED, server=EnvRequirement.UNSUPPORTED),
    )
    verified, failure = _verify_one(
        site, make_limiter(), {"sodium": config_mod("sodium", "v1")}, "sodium"
    )
    assert failure is None
    assert verified.info.project_info.name == "Sodium"
    assert verified.env_requirements.client is KnownEnvRequirement.REQUIRED
    assert verified.env_requirements.server is KnownEnvRequirement.UNSUPPORTED


def test_distribution_denied(make_limiter):
    site = _curseforge()
    site.add_mod(1, 10, "Closed Mod", distribution_allowed=False)
    verified, failure = _verify_one(
        site, make_limiter("curseforge"), {"closed": config_mod(1, 10)}, "closed"
    )
    assert verified is None
    assert isinstance(failure, DistributionDeniedError)


def test_minecraft_version_mismatch(make_limiter):
    site = FakeSite()
    site.add_mod("old", "v1", "Old Mod", minecraft_versions=("1.19.2",))
    mods = {"old": config_mod("old", "v1")}

    _, failure = _verify_one(site, make_limiter(), mods, "old")
    assert isinstance(failure, MinecraftVersionMismatchError)
    assert failure.expected == MC_VERSION
    assert failure.actual == ["1.19.2"]

    verified, failure = _verify_one(site, make_limiter(), mods, "old", None)
    assert failure is None
    assert verified is not None


def test_missing_required_dependency_is_named(make_limiter):
    site = _curseforge()
    site.add_mod(1, 10, "Needs Dep", dependencies=[required(DependencyId.project(42))])
    site.add_project(42, "Dep Name")

    _, failure = _verify_one(
        site, make_limiter("curseforge"), {"needs": config_mod(1, 10)}, "needs"
    )
    assert isinstance(failure, MissingRequiredDependenciesError)
    assert failure.missing == ["Dep Name (42)"]


def test_ignored_dependency_is_not_looked_up(make_limiter):
    site = _curseforge()
    site.add_mod(1, 10, "Needs Dep", dependencies=[required(DependencyId.project(42))])

    mods = {"needs": config_mod(1, 10, ignored=[DependencyId.project(42)])}
    verified, failure = _verify_one(site, make_limiter("curseforge"), mods, "needs")
    assert failure is None
    assert verified is not None
    assert site.lookups("metadata") == []


def test_substitute_satisfies_dependency(make_limiter):
    site = FakeSite()
    site.add_mod("fabric-api-fork", "f1", "Fabric API Fork")
    site.add_mod("needs", "n1", "Needs API", dependencies=[required(DependencyId.project("P7"))])

    mods = {
        "fork": config_mod(
            "fabric-api-fork", "f1", substitute_for=[DependencyId.project("P7")]
        ),
        "needs": config_mod("needs", "n1"),
    }
    verified, failure = _verify_one(site, make_limiter(), mods, "needs")
    assert failure is None
    assert verified is not None
    assert "P7" not in site.lookups("metadata")


def test_configured_dependency_is_not_looked_up(make_limiter):
    site = FakeSite()
    site.add_mod("lib", "l1", "Library")
    site.add_mod(
        "app", "a1", "App",
        dependencies=[
            required(DependencyId.project("lib")),
            required(DependencyId.version("l1")),
        ],
    )
    mods = {"lib": config_mod("lib", "l1"), "app": config_mod("app", "a1")}

    result = asyncio.run(DependencyVerifier(site, make_limiter(), MC_VERSION).verify(mods))
    assert set(result.verified) == {"lib", "app"}
    assert site.lookups("metadata") == []
    assert site.lookups("metadata_by_version") == []


def test_missing_optional_dependency_never_fails(make_limiter):
    site = FakeSite()
    site.add_mod(
        "app", "a1", "App",
        dependencies=[
            optional(DependencyId.project("known-extra")),
            # 查询会失败
            optional(DependencyId.project("ghost")),
        ],
    )
    site.add_project("known-extra", "Known Extra")

    verified, failure = _verify_one(site, make_limiter(), {"app": config_mod("app", "a1")}, "app")
    assert failure is None
    assert verified is not None


def test_required_dependency_lookup_failure(make_limiter):
    site = FakeSite()
    site.add_mod("app", "a1", "App", dependencies=[required(DependencyId.project("ghost"))])

    _, failure = _verify_one(site, make_limiter(), {"app": config_mod("app", "a1")}, "app")
    assert isinstance(failure, DependencyLoadingError)
    assert failure.dependency == DependencyId.project("ghost")
    assert isinstance(failure.cause, APINotFoundError)


def test_version_dependency_resolved_by_version_lookup(make_limiter):
    site = FakeSite()
    site.add_mod("app", "a1", "App", dependencies=[required(DependencyId.version("dv1"))])
    site.add_project("dep", "Versioned Dep", version_id="dv1")

    _, failure = _verify_one(site, make_limiter(), {"app": config_mod("app", "a1")}, "app")
    assert isinstance(failure, MissingRequiredDependenciesError)
    assert failure.missing == ["Versioned Dep (dv1)"]


def test_version_dependency_without_version_lookup(make_limiter):
    site = _curseforge()
    site.add_mod(1, 10, "App", dependencies=[required(DependencyId.version(99))])

    _, failure = _verify_one(site, make_limiter("curseforge"), {"app": config_mod(1, 10)}, "app")
    assert isinstance(failure, DependencyLoadingError)
    assert isinstance(failure.cause, UnsupportedLookupError)


def test_load_failure_does_not_stop_siblings(make_limiter):
    site = FakeSite()
    site.add_mod("good", "g1", "Good")
    mods = {"good": config_mod("good", "g1"), "broken": config_mod("broken", "b1")}

    result = asyncio.run(DependencyVerifier(site, make_limiter(), MC_VERSION).verify(mods))
    assert set(result.verified) == {"good"}
    assert isinstance(result.failures["broken"], LoadingError)
    assert isinstance(result.failures["broken"].cause, APINotFoundError)


def test_verification_respects_concurrency_limit(make_limiter):
    site = FakeSite(delay=0.01)
    mods = {}
    for i in range(10):
        site.add_mod(f"p{i}", f"v{i}", f"Mod {i}")
        mods[f"mod{i}"] = config_mod(f"p{i}", f"v{i}")

    limiter = make_limiter(max_concurrent=2)
    result = asyncio.run(DependencyVerifier(site, limiter, MC_VERSION).verify(mods))
    assert len(result.verified) == 10
    assert site.peak_in_flight <= 2
    assert limiter.peak_in_flight <= 2


def _two_sites():
    curseforge = _curseforge()
    modrinth = FakeSite()
    container = ModContainer()
    for i in range(5):
        curseforge.add_mod(i, i + 100, f"CF Mod {i}")
        container.curseforge[f"cf{i}"] = config_mod(i, i + 100)
        modrinth.add_mod(f"mr{i}", f"mv{i}", f"MR Mod {i}")
        container.modrinth[f"mr{i}"] = config_mod(f"mr{i}", f"mv{i}")

    curseforge.add_mod(50, 500, "Denied", distribution_allowed=False)
    container.curseforge["cf_bad"] = config_mod(50, 500)
    modrinth.add_mod("old", "ov", "Old", minecraft_versions=("1.16.5",))
    container.modrinth["mr_bad"] = config_mod("old", "ov")
    return {"curseforge": curseforge, "modrinth": modrinth}, container


def test_verify_mods_aggregates_all_failures(make_limiter):
    sites, container = _two_sites()
    limiters = {name: make_limiter(name) for name in sites}

    with pytest.raises(ModsVerificationError) as excinfo:
        asyncio.run(verify_mods(container, sites, limiters, MC_VERSION))

    failures = excinfo.value.failures
    assert set(failures) == {"cf_bad", "mr_bad"}
    assert isinstance(failures["cf_bad"], DistributionDeniedError)
    assert isinstance(failures["mr_bad"], MinecraftVersionMismatchError)
    lines = str(excinfo.value).splitlines()[1:]
    assert lines[0].startswith("Mod cf_bad:")
    assert lines[1].startswith("Mod mr_bad:")


def test_verify_mods_success(make_limiter):
    sites, container = _two_sites()
    del container.curseforge["cf_bad"]
    del container.modrinth["mr_bad"]
    limiters = {name: make_limiter(name) for name in sites}

    pack = asyncio.run(verify_mods(container, sites, limiters, MC_VERSION))
    assert len(pack) == 10
    assert set(pack.curseforge) == {f"cf{i}" for i in range(5)}
    assert set(pack.modrinth) == {f"mr{i}" for i in range(5)}


def test_rate_limited_load_is_retried(make_limiter, sleeps):
    site = FakeSite()
    site.add_mod("sodium", "v1", "Sodium")
    site.rate_limited["file"] = 2

    verified, failure = _verify_one(
        site, make_limiter(), {"sodium": config_mod("sodium", "v1")}, "sodium"
    )
    assert failure is None
    assert verified is not None
    assert len(site.lookups("file")) == 3
    assert sleeps.delays == [1.0, 2.0]


def test_rate_limit_that_never_clears(make_limiter, sleeps):
    site = FakeSite()
    site.add_mod("sodium", "v1", "Sodium")
    site.rate_limited["file"] = 100

    _, failure = _verify_one(
        site, make_limiter(max_retries=2), {"sodium": config_mod("sodium", "v1")}, "sodium"
    )
    assert isinstance(failure, LoadingError)
    assert isinstance(failure.cause, APIRateLimitError)
    assert len(site.lookups("file")) == 3
    assert sleeps.delays == [1.0, 2.0]
