from feedbackloop.extensions import db
from feedbackloop.models import Feedback, Project


def delete_project(project: Project) -> None:
    """Remove a project with its feedback and webhooks. Caller commits."""
    # Explicit child deletes: SQLite does not enforce ON DELETE CASCADE without the pragma
    db.session.query(Feedback).filter(Feedback.project_id == project.id).delete(synchronize_session=False)
    for hook in list(project.webhooks):
        db.session.delete(hook)
    db.session.delete(project)


def delete_projects_of(user_id: int) -> int:
    projects = db.session.query(Project).filter(Project.owner_id == user_id).all()
    for project in projects:
        delete_project(project)
    return len(projects)
