"""Tests for the target factories, executed with fake capability backends."""

from __future__ import annotations

from pathlib import Path

import pytest

from installforge.backends.cargo import CargoToolchain
from installforge.core.installer import Installer
from installforge.models.config import ExecutionOptions
from installforge.models.reports import ExitStatus
from installforge.models.targets import TargetKind, TargetState
from installforge.targets import (
    component_build,
    composite_group,
    engine_location,
    file_install,
    image_build,
    image_load,
    image_location,
)

OPTIONS = ExecutionOptions(concurrency_limit=2)


class FakeToolchain:
    def __init__(self):
        self.calls = []

    def compile(self, source, context, *, packages=None, release=True, extra_args=None):
        self.calls.append((Path(source), packages, release, extra_args))
        out = Path(source) / "build" / "app"
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text("binary")
        return [out]


class FakeCargo(CargoToolchain):
    def __init__(self):
        super().__init__()
        self.calls = []

    def compile(self, source, context, *, packages=None, release=True, extra_args=None):
        self.calls.append(packages)
        built = []
        for package in packages:
            out = Path(source) / "target" / ("release" if release else "debug") / package
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(package)
            built.append(out)
        return built


class LockingCargo(FakeCargo):
    """Writes Cargo.lock on first build, as real cargo does."""

    def compile(self, source, context, **kwargs):
        lock = Path(source) / "Cargo.lock"
        if not lock.exists():
            lock.write_text("# generated\n")
        return super().compile(source, context, **kwargs)


class FakeDocker:
    """Stands in for both the image builder and the container engine."""

    def __init__(self):
        self.images: dict[str, str] = {}
        self.loaded: dict[str, str] = {}
        self.builds = 0

    def build(self, context_dir, tag, context, *, dockerfile=None, build_args=None):
        self.builds += 1
        self.images[tag] = f"sha256:{self.builds:04d}"
        return self.images[tag]

    def save(self, tag, archive, context):
        Path(archive).parent.mkdir(parents=True, exist_ok=True)
        Path(archive).write_text(self.images[tag])

    def load(self, archive, context):
        image_id = Path(archive).read_text()
        self.loaded["app:1.0"] = image_id
        return "app:1.0"

    def image_id(self, reference):
        return self.loaded.get(reference)


class FakePlacer:
    def __init__(self):
        self.calls = []

    def place(self, source, destination, context, *, mode=None, link=False):
        self.calls.append((source, destination, mode, link))
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        Path(destination).write_bytes(Path(source).read_bytes())
        return Path(destination)


@pytest.fixture
def crate(tmp_path):
    root = tmp_path / "hello-world"
    (root / "src").mkdir(parents=True)
    (root / "src" / "main.rs").write_text("fn main() {}\n")
    (root / "Cargo.toml").write_text('[package]\nname = "hello-world"\nversion = "0.1.0"\n')
    return root


class TestComponentBuild:
    def test_cargo_defaults_from_manifest(self, crate):
        target = component_build("hello", crate)
        assert target.kind == TargetKind.COMPONENT_BUILD
        assert target.inputs == (
            str(crate / "Cargo.toml"),
            str(crate / "Cargo.lock"),
            str(crate / "src"),
        )
        assert target.optional_inputs == (str(crate / "Cargo.lock"),)
        assert target.outputs == (str(crate / "target" / "release" / "hello-world"),)

    def test_cargo_build_then_fresh(self, installer, crate):
        cargo = FakeCargo()
        installer.register_target(component_build("hello", crate, toolchain=cargo))
        assert installer.make(options=OPTIONS).states["hello"] == TargetState.SUCCEEDED
        assert cargo.calls == [["hello-world"]]
        assert installer.make(options=OPTIONS).states["hello"] == TargetState.FRESH
        (crate / "src" / "main.rs").write_text("fn main() { todo!() }\n")
        assert installer.plan().stale == ["hello"]

    def test_generated_lock_file_keeps_rerun_fresh(self, settings, memory_store, crate):
        cargo = LockingCargo()
        for _ in range(2):
            installer = Installer(settings, store=memory_store)
            installer.register_target(component_build("hello", crate, toolchain=cargo))
            report = installer.make(options=OPTIONS)
        assert (crate / "Cargo.lock").exists()
        assert cargo.calls == [["hello-world"]]
        assert report.actions_executed == 0
        assert report.states["hello"] == TargetState.FRESH

    def test_edited_lock_file_rebuilds(self, installer, crate):
        cargo = LockingCargo()
        installer.register_target(component_build("hello", crate, toolchain=cargo))
        installer.make(options=OPTIONS)
        (crate / "Cargo.lock").write_text("# updated\n")
        plan = installer.plan()
        assert plan.reasons["hello"] == f"input '{crate / 'Cargo.lock'}' changed"

    def test_build_output_does_not_dirty_inputs(self, installer, crate):
        installer.register_target(component_build("hello", crate, toolchain=FakeCargo()))
        installer.make(options=OPTIONS)
        assert installer.plan().is_empty

    def test_custom_toolchain(self, installer, tmp_path, src):
        toolchain = FakeToolchain()
        installer.register_target(
            component_build(
                "app",
                src,
                toolchain=toolchain,
                inputs=[str(src / "a.txt")],
                outputs=[str(src / "build" / "app")],
                release=False,
                extra_args=["--verbose"],
            )
        )
        report = installer.make(options=OPTIONS)
        assert report.exit_status == ExitStatus.ALL_SUCCEEDED
        assert toolchain.calls == [(src, None, False, ["--verbose"])]


class TestImageTargets:
    def test_image_build_outputs(self, tmp_path):
        ctx = tmp_path / "ctx"
        target = image_build("img", ctx, "app:1.0", archive=tmp_path / "out" / "app.tar")
        assert target.outputs == (image_location("app:1.0"), str(tmp_path / "out" / "app.tar"))
        assert target.inputs == (str(ctx),)

    def test_archive_inside_context_rejected(self, tmp_path):
        with pytest.raises(ValueError, match="inside its input"):
            image_build("img", tmp_path, "app:1.0", archive=tmp_path / "out" / "app.tar")

    def test_dockerfile_outside_context_is_an_input(self, tmp_path):
        target = image_build("img", tmp_path / "ctx", "app", dockerfile=tmp_path / "Dockerfile")
        assert str(tmp_path / "Dockerfile") in target.inputs

    def test_build_save_and_load(self, installer, tmp_path, src, memory_store):
        docker = FakeDocker()
        archive = tmp_path / "images" / "app.tar"
        installer.register_target(image_build("img", src, "app:1.0", archive=archive, builder=docker))
        installer.register_target(
            image_load("load", archive, "app:1.0", engine=docker), depends_on=["img"]
        )
        report = installer.make(options=OPTIONS)
        assert report.exit_status == ExitStatus.ALL_SUCCEEDED
        assert memory_store.get(image_location("app:1.0")).signature == "sha256:0001"
        assert memory_store.get(engine_location("app:1.0")).signature == "sha256:0001"
        assert installer.plan().is_empty

    def test_image_removed_from_engine_makes_load_stale(self, installer, tmp_path, src):
        docker = FakeDocker()
        archive = tmp_path / "images" / "app.tar"
        installer.register_target(image_build("img", src, "app:1.0", archive=archive, builder=docker))
        installer.register_target(
            image_load("load", archive, "app:1.0", engine=docker), depends_on=["img"]
        )
        installer.make(options=OPTIONS)
        docker.loaded.clear()
        plan = installer.plan()
        assert plan.stale == ["load"]
        assert plan.reasons["load"] == "custom staleness check"


class TestFileInstall:
    def test_install(self, installer, tmp_path, src):
        placer = FakePlacer()
        dest = tmp_path / "prefix" / "a.txt"
        installer.register_target(file_install("inst", src / "a.txt", dest, mode=0o644, placer=placer))
        report = installer.make(options=OPTIONS)
        assert report.states["inst"] == TargetState.SUCCEEDED
        assert dest.read_text() == "source a\n"
        assert placer.calls == [(src / "a.txt", dest, 0o644, False)]

    def test_deleted_destination_reinstalls(self, installer, tmp_path, src):
        dest = tmp_path / "prefix" / "a.txt"
        installer.register_target(file_install("inst", src / "a.txt", dest))
        installer.make(options=OPTIONS)
        dest.unlink()
        report = installer.make(options=OPTIONS)
        assert report.states["inst"] == TargetState.SUCCEEDED
        assert dest.exists()


class TestCompositeGroup:
    def test_definition(self):
        group = composite_group("all-images", "Every image")
        assert group.kind == TargetKind.COMPOSITE_GROUP
        assert group.action is None
        assert group.label == "Every image"

    def test_group_runs_after_members(self, installer, make_target, recorder):
        installer.register_target(make_target("one"))
        installer.register_target(make_target("two"))
        installer.register_target(composite_group("both")).depends_on("one", "two")
        report = installer.make(options=OPTIONS)
        assert report.states["both"] == TargetState.SUCCEEDED
        assert report.actions_executed == 2
        assert list(report.outcomes) == ["one", "two", "both"]
