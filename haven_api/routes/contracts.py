# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Contract workflow endpoints.

This module implements proposal, listing, detail view, signature,
ratification and cancellation of housing contracts.
"""

import logging

from flask import current_app, jsonify
from flask_openapi3 import APIBlueprint, Tag
from opentelemetry import trace

from ..middleware.auth import require_jwt
from ..models.requests import CancelContractRequest, ContractPath, ProposeContractRequest
from ..utils.request import current_identity, to_naive_utc

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

contracts_tag = Tag(name="Contracts", description="Housing contract workflow")
contracts_bp = APIBlueprint(
    'contracts',
    __name__,
    url_prefix='/api/contracts',
    abp_tags=[contracts_tag]
)


@contracts_bp.post('')
@require_jwt
def propose_contract(body: ProposeContractRequest):
    """
    Propose a contract to an approved counterpart of the opposite role.

    The end date is derived from the start date and the duration.
    """
    proposer = current_identity()
    with tracer.start_as_current_span(
        "contracts.route.propose",
        attributes={"proposer.id": proposer.id, "counterpart.id": body.counterpart_id}
    ):
        contract = current_app.contract_service.propose(
            proposer,
            body.counterpart_id,
            body.terms,
            body.duration,
            to_naive_utc(body.start_date)
        )
        return jsonify(current_app.hal_formatter.format_contract(contract, proposer)), 201


@contracts_bp.get('')
@require_jwt
def list_contracts():
    viewer = current_identity()
    contracts = current_app.contract_service.list_contracts(viewer)
    return jsonify(current_app.hal_formatter.format_contract_collection(contracts, viewer))


@contracts_bp.get('/<contract_id>')
@require_jwt
def get_contract(path: ContractPath):
    viewer = current_identity()
    contract = current_app.contract_service.get_contract(viewer, path.contract_id)
    return jsonify(current_app.hal_formatter.format_contract(contract, viewer))


@contracts_bp.post('/<contract_id>/sign')
@require_jwt
def sign_contract(path: ContractPath):
    """Sign as the caller's party; signing twice keeps the first timestamp."""
    actor = current_identity()
    contract = current_app.contract_service.sign(actor, path.contract_id)
    return jsonify(current_app.hal_formatter.format_contract(contract, actor))


@contracts_bp.post('/<contract_id>/approve')
@require_jwt
def approve_contract(path: ContractPath):
    admin = current_identity()
    contract = current_app.contract_service.approve(admin, path.contract_id)
    return jsonify(current_app.hal_formatter.format_contract(contract, admin))


@contracts_bp.post('/<contract_id>/cancel')
@require_jwt
def cancel_contract(path: ContractPath, body: CancelContractRequest):
    actor = current_identity()
    contract = current_app.contract_service.cancel(actor, path.contract_id, body.reason)
    return jsonify(current_app.hal_formatter.format_contract(contract, actor))
