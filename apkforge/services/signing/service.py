"""
Signing Service.

Produces a signed APK from the packager's output. Every job gets its own
throwaway keystore with a plausible-looking certificate subject; when key
generation fails the configured default identity (normally the Android debug
keystore) is used instead.
"""

from __future__ import annotations

import random
import re
import shutil
import string
from pathlib import Path

from pydantic import SecretStr

from ...core.config import SigningConfig, ToolsConfig
from ...core.exceptions import ForgeError, SigningError
from ...core.logging import get_logger
from ...core.types import ServiceResult
from ...models.job import SigningIdentity
from ..toolchain import CommandRunner, resolve_tool

logger = get_logger(__name__)

ORGANIZATIONS = (
    "Tech Solutions",
    "Mobile Apps",
    "App Studio",
    "Digital Works",
    "Soft Dev",
    "App Factory",
    "Code Labs",
    "Smart Apps",
)
CITIES = ("San Francisco", "New York", "London", "Berlin", "Tokyo", "Sydney", "Toronto", "Paris")
COUNTRIES = ("US", "GB", "DE", "JP", "AU", "CA", "FR", "NL")

_PASS_ALPHABET = string.ascii_lowercase + string.digits


class Signer:
    """Generates signing identities and signs APKs."""

    def __init__(
        self,
        runner: CommandRunner,
        tools: ToolsConfig,
        config: SigningConfig,
        rng: random.Random | None = None,
    ) -> None:
        """Initialize the signer.

        Args:
            runner: Command runner for keytool/zipalign/apksigner
            tools: Tool locations
            config: Timeouts and the default identity
            rng: Random source for identity generation
        """
        self.runner = runner
        self.config = config
        self.rng = rng or random.Random()
        self.keytool = resolve_tool("keytool", tools.keytool_path)
        self.apksigner = resolve_tool("apksigner", tools.apksigner_path)
        self.zipalign = self._find_zipalign(tools.zipalign_path)

    @staticmethod
    def _find_zipalign(configured: Path | None) -> str | None:
        if configured is not None:
            return str(configured)
        return shutil.which("zipalign")

    def default_identity(self) -> SigningIdentity:
        """The pre-provisioned fallback identity."""
        return SigningIdentity(
            distinguished_name="CN=Android Debug,O=Android,C=US",
            alias=self.config.default_alias,
            store_password=self.config.default_store_password,
            key_password=self.config.default_key_password,
            keystore=self.config.default_keystore,
            is_default=True,
        )

    def random_identity(self, app_name: str | None, keystore: Path) -> SigningIdentity:
        """Build a fresh identity description (no key material yet)."""
        org = self.rng.choice(ORGANIZATIONS).replace(" ", "")
        city = self.rng.choice(CITIES).replace(" ", "")
        country = self.rng.choice(COUNTRIES)
        common_name = re.sub(r"[^a-zA-Z0-9]", "", app_name or "")[:15] or "App"
        passphrase = SecretStr("pass" + "".join(self.rng.choice(_PASS_ALPHABET) for _ in range(8)))

        return SigningIdentity(
            distinguished_name=f"CN={common_name},OU={org},O={org},L={city},ST={city},C={country}",
            alias=f"key{self.rng.randrange(9999)}",
            store_password=passphrase,
            key_password=passphrase,
            keystore=keystore,
        )

    async def acquire_identity(self, app_name: str | None, keystore: Path) -> ServiceResult[SigningIdentity]:
        """Generate an ephemeral keystore, falling back to the default identity.

        Args:
            app_name: Used for the certificate common name
            keystore: Where the ephemeral keystore is written

        Returns:
            ServiceResult with the identity to sign with; a fallback adds a warning.
        """
        identity = self.random_identity(app_name, keystore)
        keystore.parent.mkdir(parents=True, exist_ok=True)
        keystore.unlink(missing_ok=True)

        cmd = [
            self.keytool,
            "-genkeypair",
            "-keystore", str(keystore),
            "-alias", identity.alias,
            "-keyalg", "RSA",
            "-keysize", "2048",
            "-validity", "10000",
            "-storepass", identity.store_password.get_secret_value(),
            "-keypass", identity.key_password.get_secret_value(),
            "-dname", identity.distinguished_name,
            "-noprompt",
        ]
        try:
            await self.runner.run(cmd, timeout=self.config.keygen_timeout_seconds, log_output=False)
            if not keystore.is_file():
                raise SigningError(
                    message="keytool finished without writing a keystore",
                    operation="acquire_identity",
                )
        except ForgeError as e:
            logger.warning("Keystore generation failed, using default identity", error=str(e))
            keystore.unlink(missing_ok=True)
            return ServiceResult.with_warnings(
                self.default_identity(),
                [f"signing key generation failed, default identity used: {e}"],
            )

        logger.info("Signing identity generated", alias=identity.alias, dname=identity.distinguished_name)
        return ServiceResult.ok(identity)

    async def align(self, apk: Path, output: Path) -> ServiceResult[Path]:
        """Run zipalign when available.

        Returns:
            ServiceResult with the APK to sign next. Without zipalign, or when
            alignment fails, that is the input APK.
        """
        if self.zipalign is None:
            return ServiceResult.ok(apk)

        try:
            await self.runner.run([self.zipalign, "-f", "4", str(apk), str(output)])
        except ForgeError as e:
            logger.warning("zipalign failed, signing unaligned APK", error=str(e))
            output.unlink(missing_ok=True)
            return ServiceResult.with_warnings(apk, [f"zipalign failed: {e}"])

        if not output.is_file():
            return ServiceResult.with_warnings(apk, ["zipalign produced no output"])
        return ServiceResult.ok(output)

    async def sign(self, apk: Path, identity: SigningIdentity, output: Path) -> Path:
        """Sign ``apk`` into ``output``.

        Raises:
            SigningError: On any failure, timeout or missing output.
        """
        output.parent.mkdir(parents=True, exist_ok=True)
        output.unlink(missing_ok=True)

        cmd = [
            self.apksigner,
            "sign",
            "--ks", str(identity.keystore),
            "--ks-key-alias", identity.alias,
            "--ks-pass", f"pass:{identity.store_password.get_secret_value()}",
            "--key-pass", f"pass:{identity.key_password.get_secret_value()}",
            "--out", str(output),
            str(apk),
        ]
        try:
            await self.runner.run(cmd, timeout=self.config.sign_timeout_seconds, log_output=False)
        except ForgeError as e:
            raise SigningError(
                message=f"Signing failed: {e}",
                operation="sign",
                context={"keystore": str(identity.keystore), "default_identity": identity.is_default},
                cause=e,
            )

        if not output.is_file():
            raise SigningError(message="Signer produced no output", operation="sign")

        logger.info("APK signed", apk=str(output), default_identity=identity.is_default)
        return output
