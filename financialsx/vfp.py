"""
Legacy VFP Integration Module

Talks to the Visual FoxPro listener over TCP. Each command is one JSON line;
the listener answers with one line, either JSON or a plain "OK ..." /
"ERR ..." string. Connection settings live in application storage.
"""

import json
import socket
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .audit import AuditEventType, AuditTrail
from .config import get_config
from .exceptions import VFPError
from .logging_config import get_logger, log_action
from .storage import StorageInterface, StorageRecord


logger = get_logger("financialsx.vfp")

SETTINGS_TABLE = "vfp_settings"
SETTINGS_ID = "default"

FORMS = [
    {"name": "Customer", "description": "Customer Management"},
    {"name": "Invoice", "description": "Invoice Entry"},
    {"name": "Payment", "description": "Payment Processing"},
    {"name": "Reports", "description": "Report Generation"},
    {"name": "GLEntry", "description": "General Ledger Entry"},
    {"name": "APBill", "description": "Accounts Payable Bills"},
    {"name": "ARInvoice", "description": "Accounts Receivable"},
    {"name": "CheckPrint", "description": "Check Printing"},
    {"name": "BankRec", "description": "Bank Reconciliation"},
    {"name": "Vendor", "description": "Vendor Management"},
]


@dataclass
class VFPSettings(StorageRecord):
    """Connection settings for the FoxPro listener"""
    host: str = "localhost"
    port: int = 23456
    enabled: bool = False
    timeout: int = 5

    def validate(self) -> None:
        if not self.host or not self.host.strip():
            raise VFPError("Host is required")
        if not 1 <= int(self.port) <= 65535:
            raise VFPError(f"Port must be between 1 and 65535, got {self.port}")
        if int(self.timeout) <= 0:
            raise VFPError(f"Timeout must be positive, got {self.timeout}")

    def to_public(self) -> Dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "enabled": self.enabled,
            "timeout": self.timeout,
            "updated_at": self.updated_at.isoformat(),
        }


class VFPClient:
    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit = audit_trail

    # Settings

    def get_settings(self) -> VFPSettings:
        data = self.storage.load(SETTINGS_TABLE, SETTINGS_ID)
        if data:
            return VFPSettings.from_dict(data)
        cfg = get_config()
        now = datetime.now(timezone.utc)
        return VFPSettings(id=SETTINGS_ID, created_at=now, updated_at=now,
                           host=cfg.vfp_host, port=cfg.vfp_port, enabled=False,
                           timeout=cfg.vfp_timeout)

    def save_settings(self, host: str, port: int, enabled: bool, timeout: int = 5,
                      user_id: Optional[str] = None) -> VFPSettings:
        current = self.get_settings()
        settings = VFPSettings(
            id=SETTINGS_ID,
            created_at=current.created_at,
            updated_at=datetime.now(timezone.utc),
            host=(host or "").strip(),
            port=int(port),
            enabled=bool(enabled),
            timeout=int(timeout),
        )
        settings.validate()
        self.storage.save(SETTINGS_TABLE, SETTINGS_ID, settings.to_dict())

        if self.audit:
            self.audit.log_event(AuditEventType.VFP_SETTINGS_CHANGED, "settings", "vfp",
                                 settings.to_public(), user_id=user_id)
        log_action(logger, "info", f"VFP settings saved ({settings.host}:{settings.port}, "
                                   f"enabled={settings.enabled})",
                   user_id=user_id, action="save_vfp_settings")
        return settings

    # Transport

    def _exchange(self, settings: VFPSettings, command: Dict[str, Any]) -> str:
        """Send one JSON line and return the trimmed reply line"""
        payload = (json.dumps(command) + "\n").encode("utf-8")
        address = f"{settings.host}:{settings.port}"
        try:
            with socket.create_connection((settings.host, settings.port),
                                          timeout=settings.timeout) as conn:
                conn.sendall(payload)
                with conn.makefile("rb") as reader:
                    line = reader.readline()
        except OSError as e:
            raise VFPError(f"connection to {address} failed: {e}")
        if not line:
            raise VFPError(f"no response from {address}")
        return line.decode("utf-8", errors="replace").strip()

    def send_command(self, command: Dict[str, Any]) -> Dict[str, Any]:
        settings = self.get_settings()
        if not settings.enabled:
            raise VFPError("VFP integration is disabled")
        reply = self._exchange(settings, command)
        try:
            response = json.loads(reply)
        except ValueError:
            if reply.startswith("ERR"):
                raise VFPError(f"VFP error: {reply[3:].strip()}")
            return {"response": reply}
        if not isinstance(response, dict):
            return {"response": response}
        return response

    # Operations

    def test_connection(self) -> Dict[str, Any]:
        """Check the listener is reachable; failures are reported, not raised"""
        settings = self.get_settings()
        if not settings.enabled:
            return {"success": False, "message": "VFP integration is disabled"}
        try:
            reply = self._exchange(settings, {"form": "TEST"})
        except VFPError as e:
            logger.warning(f"VFP connection test failed: {e}")
            return {"success": False, "message": str(e)}
        if not (reply.startswith("OK") or reply.startswith("ERR")):
            return {"success": False, "message": f"unexpected response: {reply}"}
        return {"success": True,
                "message": f"Connected to VFP listener at {settings.host}:{settings.port}",
                "response": reply}

    def launch_form(self, form_name: str, argument: str = "", company: str = "",
                    user_id: Optional[str] = None) -> str:
        if not form_name or not form_name.strip():
            raise VFPError("Form name is required")
        response = self.send_command({
            "action": "launchForm",
            "formName": form_name.strip(),
            "argument": argument or "",
            "company": company or "",
        })

        if response.get("needsCompanyChange") is True:
            raise VFPError(
                f"company mismatch: FoxPro has '{response.get('currentCompany', '')}' open, "
                f"FinancialsX has '{response.get('requestedCompany', company)}'"
            )
        if response.get("success") is True:
            message = response.get("message") or "Form launched successfully"
        elif "response" in response and str(response["response"]).startswith("OK"):
            message = "Form launched successfully"
        else:
            raise VFPError(response.get("message") or "unknown error launching form")

        if self.audit:
            self.audit.log_event(AuditEventType.VFP_FORM_LAUNCHED, "vfp_form", form_name,
                                 {"argument": argument, "company": company},
                                 user_id=user_id, company=company or None)
        log_action(logger, "info", f"Launched VFP form {form_name}",
                   user_id=user_id, action="launch_form", resource=form_name, company=company)
        return message

    def get_vfp_company(self) -> str:
        response = self.send_command({"action": "getCompany"})
        company = response.get("company")
        if not isinstance(company, str):
            raise VFPError("could not get company from VFP")
        return company

    def set_vfp_company(self, company: str) -> None:
        response = self.send_command({"action": "setCompany", "company": company})
        if response.get("success") is True:
            return
        raise VFPError(response.get("message") or "failed to set company in VFP")

    def get_form_list(self) -> List[Dict[str, str]]:
        return [dict(form) for form in FORMS]
