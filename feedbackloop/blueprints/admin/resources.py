from flask import jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from feedbackloop.extensions import db
from feedbackloop.models import Permission, Resource
from feedbackloop.services.policy import permission_required
from feedbackloop.utils.helpers import error, json_body, like_term
from feedbackloop.utils.validators import IDENTIFIER_RE, clean_str
from . import bp

IDENTIFIER_MESSAGE = "Identifier may only contain lowercase letters, numbers, hyphens, and underscores"


def _identifier_taken(identifier: str, exclude_id=None) -> bool:
    q = db.session.query(Resource.id).filter(Resource.identifier == identifier)
    if exclude_id is not None:
        q = q.filter(Resource.id != exclude_id)
    return q.first() is not None


@bp.get("/resources")
@permission_required("resources.read")
def list_resources():
    q = Resource.query
    search = clean_str(request.args.get("search"))
    if search:
        term = like_term(search)
        q = q.filter(or_(
            Resource.name.ilike(term, escape="\\"),
            Resource.identifier.ilike(term, escape="\\"),
            Resource.description.ilike(term, escape="\\"),
        ))
    rows = q.order_by(Resource.name.asc()).all()
    return jsonify({"resources": [r.to_dict() for r in rows]})


@bp.post("/resources")
@permission_required("resources.create")
def create_resource():
    data = json_body()
    name = clean_str(data.get("name"), 100)
    identifier = clean_str(data.get("identifier"), 50)
    if not name or not identifier:
        return error("Name and identifier are required", 400)
    if not IDENTIFIER_RE.match(identifier):
        return error(IDENTIFIER_MESSAGE, 400)
    if _identifier_taken(identifier):
        return error("Resource with this identifier already exists", 409)

    res = Resource(name=name, identifier=identifier, description=clean_str(data.get("description"), 2000))
    db.session.add(res)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Resource with this name or identifier already exists", 409)
    return jsonify({"resource": res.to_dict()}), 201


@bp.get("/resources/<int:resource_id>")
@permission_required("resources.read")
def get_resource(resource_id: int):
    res = db.session.get(Resource, resource_id)
    if not res:
        return error("Resource not found", 404)
    return jsonify({"resource": res.to_dict()})


@bp.put("/resources/<int:resource_id>")
@permission_required("resources.update")
def update_resource(resource_id: int):
    res = db.session.get(Resource, resource_id)
    if not res:
        return error("Resource not found", 404)
    data = json_body()
    name = clean_str(data.get("name"), 100)
    identifier = clean_str(data.get("identifier"), 50)
    if not name or not identifier:
        return error("Name and identifier are required", 400)
    if not IDENTIFIER_RE.match(identifier):
        return error(IDENTIFIER_MESSAGE, 400)
    if _identifier_taken(identifier, exclude_id=res.id):
        return error("Resource with this identifier already exists", 409)

    res.name = name
    res.identifier = identifier
    if "description" in data:
        res.description = clean_str(data.get("description"), 2000)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return error("Resource with this name or identifier already exists", 409)
    return jsonify({"resource": res.to_dict()})


@bp.delete("/resources/<int:resource_id>")
@permission_required("resources.delete")
def delete_resource(resource_id: int):
    res = db.session.get(Resource, resource_id)
    if not res:
        return error("Resource not found", 404)
    in_use = db.session.query(Permission.id).filter(Permission.resource == res.identifier).first()
    if in_use:
        return error("Cannot delete resource because it is referenced by existing permissions.", 409)
    db.session.delete(res)
    db.session.commit()
    return jsonify({"message": "Resource deleted successfully"})
