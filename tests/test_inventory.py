from pathlib import Path
import re
import textwrap

import pytest

from prod_automation.inventory import ScriptLoader, ScriptLoadError
from prod_automation.types import ActionKind, PublicKeyAuth, UserPassAuth
from prod_automation.validation import ReleaseOp


def test_loads_script_with_actions(tmp_path: Path) -> None:
    script_path = tmp_path / "web.yaml"
    script_path.write_text(
        textwrap.dedent(
            """
            provider: linux_debian
            hostname: 10.0.0.5
            port: 2222
            user: admin
            password: $PROMPT
            systemValidation: (Debian, >=12)
            useSudo: true

            actions:
              - packagesInstall:
                  packages:
                    - curl
                    - git
              - systemctl:
                  action: restart
                  service: nginx
              - createDirectory:
                  path: /opt/app
                  permissions: 0755
            """
        ).strip()
    )

    script = ScriptLoader().load(script_path)

    assert script.provider == "linux_debian"
    assert script.host == "10.0.0.5"
    assert script.port == 2222
    assert script.auth == UserPassAuth(username="admin", password="$PROMPT")
    assert script.use_sudo is True
    assert script.hide_commands is True
    assert script.system_validation.id_name == "Debian"
    assert script.system_validation.release.op is ReleaseOp.GREATER_THAN_OR_EQUAL
    assert [action.kind for action in script.actions] == [
        ActionKind.INSTALL_PACKAGES,
        ActionKind.SYSTEM_CTL,
        ActionKind.CREATE_DIRECTORY,
    ]
    assert script.actions[0].params.get_str_list("packages") == ["curl", "git"]
    assert script.actions[2].params.get_str_or_int("permissions") == "0755"
    assert script.script_dir == str(tmp_path.resolve())


def test_publickey_auth() -> None:
    script = ScriptLoader().load_text(
        textwrap.dedent(
            """
            provider: linux_fedora
            host: db-01
            username: deploy
            authType: publicKey
            privateKeyPath: ~/.ssh/id_ed25519
            passphrase: $PROMPT
            hideCommandsFromHistory: false
            """
        )
    )

    assert script.auth == PublicKeyAuth(
        username="deploy", private_key_path="~/.ssh/id_ed25519", passphrase="$PROMPT"
    )
    assert script.hide_commands is False
    assert script.actions == []


def test_unknown_actions_are_skipped(caplog) -> None:
    script = ScriptLoader().load_text(
        textwrap.dedent(
            """
            provider: linux_debian
            host: web-01
            actions:
              - frobnicate:
                  level: 11
              - setHostname:
                  hostname: web-01
              - removeFile:
            """
        )
    )

    assert [action.kind for action in script.actions] == [ActionKind.SET_HOSTNAME, ActionKind.REMOVE_FILE]
    assert len(script.actions[1].params) == 0
    assert "frobnicate" in caplog.text


def test_yaml_errors_report_position() -> None:
    with pytest.raises(ScriptLoadError) as excinfo:
        ScriptLoader().load_text("provider: linux_debian\nactions:\n  - setHostname: [\n", source="broken.yaml")
    assert re.match(r"broken\.yaml:\d+:\d+ ", str(excinfo.value))


@pytest.mark.parametrize(
    "body",
    [
        "host: web-01",
        "provider: linux_debian\nport: 70000",
        "provider: linux_debian\nsystemValidation: '?12'",
        "provider: linux_debian\nuseSudo: maybe",
        "provider: linux_debian\nauthType: publickey",
        "provider: linux_debian\nauthType: kerberos",
        "provider: linux_debian\nactions:\n  - setHostname: web-01",
        "provider: linux_debian\nactions:\n  - {setHostname: {}, setTimeZone: {}}",
        "- just a list",
    ],
)
def test_invalid_scripts_raise(body: str) -> None:
    with pytest.raises(ScriptLoadError):
        ScriptLoader().load_text(body)


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ScriptLoadError):
        ScriptLoader().load(tmp_path / "missing.yaml")
