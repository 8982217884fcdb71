"""Test configuration for apkforge."""

import asyncio
import io
import json
import random
import shutil
import tempfile
import zipfile
from pathlib import Path

import httpx
import pytest
from PIL import Image

from apkforge.core.config import Config, ScratchConfig, SigningConfig, ToolsConfig
from apkforge.services.toolchain import CommandOutcome, CommandRunner

STOCK_PACKAGE = "com.h4k3r.galleryeye"

MANIFEST = """<?xml version="1.0" encoding="utf-8" standalone="no"?><manifest xmlns:android="http://schemas.android.com/apk/res/android" package="com.h4k3r.galleryeye">
    <uses-permission android:name="android.permission.INTERNET" />
    <uses-permission android:name="android.permission.FOREGROUND_SERVICE" />
    <application android:label="@string/app_name" android:icon="@mipmap/ic_launcher">
        <activity android:name="com.h4k3r.galleryeye.MainActivity" />
        <service android:name="com.h4k3r.galleryeye.KeepAliveService" />
    </application>
</manifest>
"""

APKTOOL_YML = """!!brut.androlib.meta.MetaInfo
apkFileName: base.apk
packageInfo:
  forcedPackageId: '127'
  renameManifestPackage: com.h4k3r.galleryeye
version: 2.9.3
"""

STRINGS_XML = """<?xml version="1.0" encoding="utf-8"?>
<resources>
    <string name="app_name">Gallery Eye</string>
    <string name="provider_authority">com.h4k3r.galleryeye.provider</string>
</resources>
"""

MAIN_ACTIVITY = """.class public Lcom/h4k3r/galleryeye/MainActivity;
.super Landroid/app/Activity;

.method protected onCreate(Landroid/os/Bundle;)V
    .locals 2
    const-string v0, "GalleryEye"
    const-string v1, "starting"
    invoke-static {v0, v1}, Landroid/util/Log;->d(Ljava/lang/String;Ljava/lang/String;)I
    new-instance v0, Lcom/h4k3r/galleryeye/KeepAliveService;
    return-void
.end method
"""

KEEP_ALIVE = """.class public Lcom/h4k3r/galleryeye/KeepAliveService;
.super Landroid/app/Service;

.field private manager:Lcom/h4k3r/galleryeye/SocketManager;

.method public onStartCommand(Landroid/content/Intent;II)I
    .locals 2
    invoke-static {v0, v1}, Landroid/util/Log;->e(Ljava/lang/String;Ljava/lang/String;)I
    invoke-static {v0, v1}, Landroid/util/Log;->i(Ljava/lang/String;Ljava/lang/String;)I
    const/4 v0, 0x1
    return v0
.end method
"""

SOCKET_MANAGER = """.class public Lcom/h4k3r/galleryeye/SocketManager;
.super Ljava/lang/Object;

.field private helper:Lcom/h4k3r/galleryeye/SmsContactManager;
"""


def write_template_tree(root: Path, with_marker: bool = True) -> Path:
    """Write a small decoded-APK tree resembling apktool output."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "AndroidManifest.xml").write_text(MANIFEST)
    if with_marker:
        (root / "apktool.yml").write_text(APKTOOL_YML)

    values = root / "res" / "values"
    values.mkdir(parents=True, exist_ok=True)
    (values / "strings.xml").write_text(STRINGS_XML)

    adaptive = root / "res" / "mipmap-anydpi-v26"
    adaptive.mkdir(parents=True, exist_ok=True)
    (adaptive / "ic_launcher.xml").write_text("<adaptive-icon />")

    hdpi = root / "res" / "mipmap-hdpi"
    hdpi.mkdir(parents=True, exist_ok=True)
    (hdpi / "ic_launcher.png").write_bytes(b"old-icon")
    (hdpi / "ic_launcher_foreground.png").write_bytes(b"old-foreground")

    smali = root / "smali" / "com" / "h4k3r" / "galleryeye"
    smali.mkdir(parents=True, exist_ok=True)
    (smali / "MainActivity.smali").write_text(MAIN_ACTIVITY)
    (smali / "KeepAliveService.smali").write_text(KEEP_ALIVE)

    smali2 = root / "smali_classes2" / "com" / "h4k3r" / "galleryeye"
    smali2.mkdir(parents=True, exist_ok=True)
    (smali2 / "SocketManager.smali").write_text(SOCKET_MANAGER)
    return root


class FakeRunner(CommandRunner):
    """Command runner that emulates apktool, keytool, zipalign and apksigner.

    ``apktool b`` zips the working tree, so tests can inspect exactly what a
    job compiled. Any operation can be made to fail by putting an exception
    into ``failures`` under its key (``"apktool d"``, ``"apktool b"``,
    ``"keytool"``, ``"zipalign"``, ``"apksigner"``).
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.failures: dict[str, Exception] = {}
        self.decode_with_marker = True
        self.build_delay = 0.0
        self.active_builds = 0
        self.max_active_builds = 0

    def count(self, key: str) -> int:
        return sum(1 for cmd in self.calls if self._key(cmd) == key)

    @staticmethod
    def _key(cmd: list[str]) -> str:
        tool = Path(cmd[0]).name
        if tool == "apktool":
            return f"apktool {cmd[1]}"
        return tool

    async def run(self, cmd, *, timeout=None, cwd=None, log_output=True):
        self.calls.append(list(cmd))
        key = self._key(cmd)
        await asyncio.sleep(0)
        if key in self.failures:
            raise self.failures[key]

        if key == "apktool d":
            out = Path(cmd[cmd.index("-o") + 1])
            if out.exists():
                shutil.rmtree(out)
            write_template_tree(out, with_marker=self.decode_with_marker)
        elif key == "apktool b":
            self.active_builds += 1
            self.max_active_builds = max(self.max_active_builds, self.active_builds)
            try:
                await asyncio.sleep(self.build_delay)
                tree = Path(cmd[2])
                out = Path(cmd[cmd.index("-o") + 1])
                with zipfile.ZipFile(out, "w") as zf:
                    for path in sorted(tree.rglob("*")):
                        if path.is_file():
                            zf.write(path, path.relative_to(tree).as_posix())
            finally:
                self.active_builds -= 1
        elif key == "keytool":
            keystore = Path(cmd[cmd.index("-keystore") + 1])
            keystore.write_bytes(b"fake-keystore")
        elif key == "zipalign":
            shutil.copyfile(cmd[-2], cmd[-1])
        elif key == "apksigner":
            out = Path(cmd[cmd.index("--out") + 1])
            shutil.copyfile(cmd[-1], out)
        return CommandOutcome(returncode=0, stdout="", stderr="")


class CallbackRecorder:
    """httpx mock transport handler collecting callback posts."""

    def __init__(self, status_code: int = 200) -> None:
        self.events: list[dict] = []
        self.status_code = status_code

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.events.append(json.loads(request.read()))
        return httpx.Response(self.status_code, json={"ok": True})

    def named(self, event: str) -> list[dict]:
        return [e for e in self.events if e["event"] == event]


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests.

    Yields:
        Path: A Path object pointing to the temporary directory.
            The directory is automatically cleaned up after the test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def template_tree(temp_dir):
    """A decoded template tree in ``temp_dir/tree``."""
    return write_template_tree(temp_dir / "tree")


@pytest.fixture
def fake_runner():
    return FakeRunner()


@pytest.fixture
def config(temp_dir):
    """Configuration pointing every path into the temporary directory.

    A placeholder template APK is created so the cache has something to decode.
    """
    base_apk = temp_dir / "base.apk"
    base_apk.write_bytes(b"PK\x03\x04template")
    return Config(
        scratch=ScratchConfig(root=temp_dir / "scratch", base_apk=base_apk),
        tools=ToolsConfig(),
        signing=SigningConfig(default_keystore=temp_dir / "debug.keystore"),
    )


@pytest.fixture
def callbacks():
    return CallbackRecorder()


@pytest.fixture
def http_client(callbacks):
    """Async HTTP client whose requests all go to ``callbacks``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(callbacks))


@pytest.fixture
def png_bytes():
    """A 256x256 RGBA PNG image."""
    buffer = io.BytesIO()
    Image.new("RGBA", (256, 256), (200, 40, 90, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def rng():
    return random.Random(1234)
