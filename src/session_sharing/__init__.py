#    Copyright 2025 FAO
#
#    Licensed under the Apache License, Version 2.0 (the "License");
#    you may not use this file except in compliance with the License.
#    You may obtain a copy of the License at
#
#        http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS,
#    WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#    See the License for the specific language governing permissions and
#    limitations under the License.
#
#    Author: Carlo Cancellieri (ccancellieri@gmail.com)
#    Company: FAO, Viale delle Terme di Caracalla, 00100 Rome, Italy
#    Contact: copyright@fao.org - http://fao.org/contact-us/terms/en/
from session_sharing.shared.models import BridgeSettings, ClaimMapping, ExternalIdentity, ReconciledUser
from session_sharing.shared.jwt_utils import (
    BridgeException,
    ExchangeError,
    VerificationError,
    PayloadInvalidError,
    ReconciliationError,
)
from session_sharing.shared.claims import extract_identity
from session_sharing.shared.verifier import TokenVerifier
from session_sharing.shared.reconciler import UserReconciler
from session_sharing.shared.settings import SettingsLoader
from session_sharing.shared.gatekeeper import SessionGatekeeper, GateState, GateResult, build_gatekeeper

__all__ = [
    "BridgeSettings",
    "ClaimMapping",
    "ExternalIdentity",
    "ReconciledUser",
    "BridgeException",
    "ExchangeError",
    "VerificationError",
    "PayloadInvalidError",
    "ReconciliationError",
    "extract_identity",
    "TokenVerifier",
    "UserReconciler",
    "SettingsLoader",
    "SessionGatekeeper",
    "GateState",
    "GateResult",
    "build_gatekeeper",
]
