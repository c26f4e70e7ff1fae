"""BotBox aggregate root: ownership boundary for bots, members, and teams.

The aggregate owns administrative data only. Every lifecycle change goes
through the Worker; the BotBox checks ownership and authorization, records
an audit entry, and never transitions a bot, job, or deployment itself.
"""

from __future__ import annotations

from threading import RLock

from packages.botbox_shared.clock import Clock
from packages.botbox_shared.concurrency import CancellationToken, KeyedLocks
from packages.botbox_shared.logging import (
    fields,
    get_logger,
    log_context,
    public_api_instrumented,
)
from services.action.event_router.domain import BotBoxEvent, EntityKind, Transition
from services.action.event_router.interfaces import TransitionPublisher
from services.lifecycle.bot_runtime import Bot, BotStatus
from services.lifecycle.deployments import Deployment
from services.lifecycle.errors import (
    AuthorizationDenied,
    BotBoxNotFound,
    BotInUse,
    BotNotFound,
    BotOwnershipConflict,
    DeploymentNotFound,
    InvitationNotFound,
    MemberNotFound,
)
from services.lifecycle.jobs import Job, JobSnapshot, RetryPolicy, WorkExecutor
from services.lifecycle.worker import Worker
from services.state.botbox.component import SERVICE_COMPONENT_ID
from services.state.botbox.domain import (
    AuditRecord,
    BotBoxRecord,
    Invitation,
    InvitationStatus,
    Member,
    Role,
    Team,
    User,
)
from services.state.botbox.interfaces import (
    AllowAllAuthorizer,
    Authorizer,
    BotBoxRepository,
)

_LOGGER = get_logger(__name__)


class BotBox:
    """One organizational unit owning its bots exclusively.

    Bots are kept in an id-indexed arena; deployments refer to bots by id
    and are read back from the Worker. Mutations of one bot's lifecycle are
    serialized by a per-bot lock, and collection updates by the aggregate
    lock, always taken in that order.
    """

    def __init__(
        self,
        *,
        record: BotBoxRecord,
        worker: Worker,
        clock: Clock,
        authorizer: Authorizer | None = None,
        repository: BotBoxRepository | None = None,
        publisher: TransitionPublisher | None = None,
    ) -> None:
        self._worker = worker
        self._clock = clock
        self._authorizer = authorizer or AllowAllAuthorizer()
        self._repository = repository
        self._publisher = publisher or worker.router
        self._lock = RLock()
        self._bot_locks = KeyedLocks()
        self._sequence = 0

        self._id = record.id
        self._name = record.name
        self._description = record.description
        self._tags = record.tags
        self._created_at = record.created_at
        self._updated_at = record.updated_at
        self._bots: dict[str, Bot] = {}
        claimed: list[str] = []
        try:
            for bot in record.bots:
                unowned = worker.owner_of(bot_id=bot.id) is None
                worker.register_bot(bot_id=bot.id, owner_id=record.id)
                if unowned:
                    claimed.append(bot.id)
                self._bots[bot.id] = bot
        except BotOwnershipConflict:
            for bot_id in claimed:
                worker.release_bot(bot_id=bot_id)
            raise
        self._members = {member.user_id: member for member in record.members}
        self._teams = {team.id: team for team in record.teams}
        self._invitations = {item.id: item for item in record.invitations}
        self._audit = list(record.audit)

    @classmethod
    def create(
        cls,
        *,
        name: str,
        owner: User,
        worker: Worker,
        clock: Clock,
        description: str = "",
        tags: tuple[str, ...] = (),
        authorizer: Authorizer | None = None,
        repository: BotBoxRepository | None = None,
    ) -> BotBox:
        """Create a BotBox with ``owner`` as its first admin."""
        now = clock.now()
        record = BotBoxRecord(
            id=clock.new_id(),
            name=name,
            description=description,
            tags=tags,
            created_at=now,
            updated_at=now,
            members=(Member(user=owner, role=Role.ADMIN, joined_at=now),),
        )
        botbox = cls(
            record=record,
            worker=worker,
            clock=clock,
            authorizer=authorizer,
            repository=repository,
        )
        with botbox._lock:
            botbox._record_audit(
                actor=owner.id,
                action="botbox.create",
                entity_kind="botbox",
                entity_id=record.id,
                detail=name,
            )
            botbox._publish(BotBoxEvent.CREATED, {"name": name, "owner_id": owner.id})
        return botbox

    @classmethod
    def load(
        cls,
        botbox_id: str,
        *,
        repository: BotBoxRepository,
        worker: Worker,
        clock: Clock,
        authorizer: Authorizer | None = None,
    ) -> BotBox:
        """Load a stored BotBox and claim ownership of its bots."""
        record = repository.load(botbox_id)
        if record is None:
            raise BotBoxNotFound(botbox_id=botbox_id)
        return cls(
            record=record,
            worker=worker,
            clock=clock,
            authorizer=authorizer,
            repository=repository,
        )

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def tags(self) -> tuple[str, ...]:
        return self._tags

    def save(self) -> None:
        """Persist the current record through the configured repository."""
        if self._repository is None:
            raise RuntimeError("BotBox has no repository configured")
        self._repository.save(self.to_record())

    def to_record(self) -> BotBoxRecord:
        with self._lock:
            return BotBoxRecord(
                id=self._id,
                name=self._name,
                description=self._description,
                tags=self._tags,
                created_at=self._created_at,
                updated_at=self._updated_at,
                bots=tuple(self._bots.values()),
                members=tuple(self._members.values()),
                teams=tuple(self._teams.values()),
                invitations=tuple(self._invitations.values()),
                audit=tuple(self._audit),
            )

    # Bots.

    @public_api_instrumented(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    def add_bot(
        self,
        *,
        principal: str,
        name: str = "",
        description: str = "",
        tags: tuple[str, ...] = (),
        bot: Bot | None = None,
    ) -> Bot:
        """Add a new bot, or adopt ``bot`` if it is not owned elsewhere."""
        self._authorize(principal, "bot.add")
        created = bot or Bot.new(
            clock=self._clock, name=name, description=description, tags=tags
        )
        self._worker.register_bot(bot_id=created.id, owner_id=self._id)
        with self._lock:
            self._bots[created.id] = created
            self._record_audit(
                actor=principal,
                action="bot.add",
                entity_kind="bot",
                entity_id=created.id,
                detail=created.name,
            )
        return created

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("bot_id",)
    )
    def update_bot(
        self,
        *,
        principal: str,
        bot_id: str,
        name: str | None = None,
        description: str | None = None,
        tags: tuple[str, ...] | None = None,
    ) -> Bot:
        self._authorize(principal, "bot.update")
        with self._lock:
            updated = self.bot(bot_id).edited(
                clock=self._clock, name=name, description=description, tags=tags
            )
            self._bots[bot_id] = updated
            self._record_audit(
                actor=principal,
                action="bot.update",
                entity_kind="bot",
                entity_id=bot_id,
            )
            return updated

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("bot_id",)
    )
    def remove_bot(self, *, principal: str, bot_id: str) -> None:
        """Remove an undeployed bot; a deployed bot raises ``BotInUse``."""
        self._authorize(principal, "bot.remove")
        with self._bot_locks.hold(bot_id):
            self.bot(bot_id)
            deployment = self._deployment_for(bot_id)
            if deployment is not None:
                raise BotInUse(bot_id=bot_id, deployment_id=deployment.id)
            self._worker.release_bot(bot_id=bot_id)
            with self._lock:
                self._bots.pop(bot_id, None)
                self._record_audit(
                    actor=principal,
                    action="bot.remove",
                    entity_kind="bot",
                    entity_id=bot_id,
                )
        self._bot_locks.discard(bot_id)

    def bot(self, bot_id: str) -> Bot:
        with self._lock:
            bot = self._bots.get(bot_id)
        if bot is None:
            raise BotNotFound(bot_id=bot_id)
        return bot

    def bots(self) -> list[Bot]:
        with self._lock:
            return list(self._bots.values())

    def bot_status(self, bot_id: str) -> BotStatus:
        self.bot(bot_id)
        return self._worker.status(bot_id=bot_id)

    # Lifecycle, delegated to the Worker.

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("bot_id",)
    )
    def deploy(
        self,
        *,
        principal: str,
        bot_id: str,
        environment: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> Deployment:
        self._authorize(principal, "deployment.create")
        with self._bot_locks.hold(bot_id):
            bot = self.bot(bot_id)
            deployment = self._worker.deploy(
                bot=bot,
                environment=environment,
                principal=principal,
                cancel_token=cancel_token,
            )
            with self._lock:
                self._record_audit(
                    actor=principal,
                    action="deployment.create",
                    entity_kind="deployment",
                    entity_id=deployment.id,
                    detail=f"bot={bot_id} environment={deployment.environment}",
                )
            return deployment

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("deployment_id",)
    )
    def undeploy(
        self,
        *,
        principal: str,
        deployment_id: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        self._authorize(principal, "deployment.delete")
        deployment = self.deployment(deployment_id)
        with self._bot_locks.hold(deployment.bot_id):
            self._worker.undeploy(
                deployment_id=deployment_id,
                principal=principal,
                cancel_token=cancel_token,
            )
            with self._lock:
                self._record_audit(
                    actor=principal,
                    action="deployment.delete",
                    entity_kind="deployment",
                    entity_id=deployment_id,
                    detail=f"bot={deployment.bot_id}",
                )

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("deployment_id",)
    )
    def schedule_job(
        self,
        *,
        principal: str,
        deployment_id: str,
        work: WorkExecutor,
        retry_policy: RetryPolicy | None = None,
    ) -> Job:
        self._authorize(principal, "job.schedule")
        self.deployment(deployment_id)
        job = self._worker.schedule(
            deployment_id=deployment_id,
            work=work,
            retry_policy=retry_policy,
            principal=principal,
        )
        with self._lock:
            self._record_audit(
                actor=principal,
                action="job.schedule",
                entity_kind="job",
                entity_id=job.job_id,
                detail=f"deployment={deployment_id}",
            )
        return job

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("deployment_id",)
    )
    def recover(self, *, principal: str, deployment_id: str) -> BotStatus:
        """Explicitly restart the bot of a deployment that went ``Unknown``."""
        self._authorize(principal, "deployment.recover")
        deployment = self.deployment(deployment_id)
        with self._bot_locks.hold(deployment.bot_id):
            status = self._worker.recover(
                deployment_id=deployment_id, principal=principal
            )
            with self._lock:
                self._record_audit(
                    actor=principal,
                    action="deployment.recover",
                    entity_kind="deployment",
                    entity_id=deployment_id,
                    detail=f"status={status}",
                )
            return status

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("bot_id",)
    )
    def reset_bot(self, *, principal: str, bot_id: str) -> BotStatus:
        """Stop an undeployed bot left ``Unknown`` so it can deploy again."""
        self._authorize(principal, "bot.reset")
        with self._bot_locks.hold(bot_id):
            self.bot(bot_id)
            status = self._worker.reset(bot_id=bot_id, principal=principal)
            with self._lock:
                self._record_audit(
                    actor=principal,
                    action="bot.reset",
                    entity_kind="bot",
                    entity_id=bot_id,
                    detail=f"status={status}",
                )
            return status

    def deployment(self, deployment_id: str) -> Deployment:
        """Return one of this BotBox's deployments."""
        for deployment in self.deployments():
            if deployment.id == deployment_id:
                return deployment
        raise DeploymentNotFound(deployment_id=deployment_id)

    def deployments(self) -> list[Deployment]:
        """Return live deployments of this BotBox's bots."""
        with self._lock:
            owned = set(self._bots)
        return [item for item in self._worker.deployments() if item.bot_id in owned]

    def jobs(self, deployment_id: str) -> list[Job]:
        self.deployment(deployment_id)
        return self._worker.jobs(deployment_id=deployment_id)

    def archived_jobs(self) -> list[JobSnapshot]:
        """Return archived jobs of every deployment this BotBox created."""
        with self._lock:
            created = {
                record.entity_id
                for record in self._audit
                if record.action == "deployment.create"
            }
        return [
            snapshot
            for snapshot in self._worker.archived_jobs()
            if snapshot.deployment_id in created
        ]

    # Members, invitations, and teams.

    @public_api_instrumented(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    def add_member(self, *, principal: str, user: User, role: Role) -> Member:
        self._authorize(principal, "member.add")
        with self._lock:
            member = Member(user=user, role=role, joined_at=self._clock.now())
            self._members[user.id] = member
            self._record_audit(
                actor=principal,
                action="member.add",
                entity_kind="member",
                entity_id=user.id,
                detail=f"role={role}",
            )
            return member

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("user_id",)
    )
    def change_role(self, *, principal: str, user_id: str, role: Role) -> Member:
        self._authorize(principal, "member.change_role")
        with self._lock:
            current = self._members.get(user_id)
            if current is None:
                raise MemberNotFound(user_id=user_id)
            updated = current.model_copy(update={"role": role})
            self._members[user_id] = updated
            self._record_audit(
                actor=principal,
                action="member.change_role",
                entity_kind="member",
                entity_id=user_id,
                detail=f"{current.role}->{role}",
            )
            self._publish(
                BotBoxEvent.ROLE_CHANGED,
                {"user_id": user_id, "from_role": current.role, "to_role": role},
            )
            return updated

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("user_id",)
    )
    def remove_member(self, *, principal: str, user_id: str) -> None:
        self._authorize(principal, "member.remove")
        with self._lock:
            if self._members.pop(user_id, None) is None:
                raise MemberNotFound(user_id=user_id)
            for team_id, team in list(self._teams.items()):
                if user_id in team.member_ids:
                    self._teams[team_id] = team.model_copy(
                        update={
                            "member_ids": tuple(
                                item for item in team.member_ids if item != user_id
                            )
                        }
                    )
            self._record_audit(
                actor=principal,
                action="member.remove",
                entity_kind="member",
                entity_id=user_id,
            )

    def member(self, user_id: str) -> Member:
        with self._lock:
            member = self._members.get(user_id)
        if member is None:
            raise MemberNotFound(user_id=user_id)
        return member

    def members(self) -> list[Member]:
        with self._lock:
            return list(self._members.values())

    @public_api_instrumented(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    def invite(self, *, principal: str, email: str, role: Role) -> Invitation:
        self._authorize(principal, "invitation.create")
        with self._lock:
            invitation = Invitation(
                id=self._clock.new_id(),
                email=email,
                role=role,
                invited_by=principal,
                created_at=self._clock.now(),
            )
            self._invitations[invitation.id] = invitation
            self._record_audit(
                actor=principal,
                action="invitation.create",
                entity_kind="invitation",
                entity_id=invitation.id,
                detail=f"{email} as {role}",
            )
            self._publish(
                BotBoxEvent.INVITED,
                {"invitation_id": invitation.id, "email": email, "role": role},
            )
            return invitation

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("invitation_id",)
    )
    def accept_invitation(self, *, invitation_id: str, user: User) -> Member:
        """Turn a pending invitation into a membership for ``user``."""
        self._authorize(user.id, "invitation.accept")
        with self._lock:
            invitation = self._pending_invitation(invitation_id)
            now = self._clock.now()
            self._invitations[invitation_id] = invitation.model_copy(
                update={"status": InvitationStatus.ACCEPTED, "decided_at": now}
            )
            member = Member(user=user, role=invitation.role, joined_at=now)
            self._members[user.id] = member
            self._record_audit(
                actor=user.id,
                action="invitation.accept",
                entity_kind="invitation",
                entity_id=invitation_id,
                detail=f"role={invitation.role}",
            )
            return member

    @public_api_instrumented(
        logger=_LOGGER, component_id=SERVICE_COMPONENT_ID, id_fields=("invitation_id",)
    )
    def decline_invitation(self, *, principal: str, invitation_id: str) -> Invitation:
        self._authorize(principal, "invitation.decline")
        with self._lock:
            invitation = self._pending_invitation(invitation_id)
            declined = invitation.model_copy(
                update={
                    "status": InvitationStatus.DECLINED,
                    "decided_at": self._clock.now(),
                }
            )
            self._invitations[invitation_id] = declined
            self._record_audit(
                actor=principal,
                action="invitation.decline",
                entity_kind="invitation",
                entity_id=invitation_id,
            )
            return declined

    def invitations(
        self, *, status: InvitationStatus | None = None
    ) -> list[Invitation]:
        with self._lock:
            return [
                item
                for item in self._invitations.values()
                if status is None or item.status == status
            ]

    @public_api_instrumented(logger=_LOGGER, component_id=SERVICE_COMPONENT_ID)
    def create_team(
        self, *, principal: str, name: str, member_ids: tuple[str, ...] = ()
    ) -> Team:
        self._authorize(principal, "team.create")
        with self._lock:
            for user_id in member_ids:
                if user_id not in self._members:
                    raise MemberNotFound(user_id=user_id)
            team = Team(
                id=self._clock.new_id(),
                name=name,
                member_ids=tuple(dict.fromkeys(member_ids)),
                created_at=self._clock.now(),
            )
            self._teams[team.id] = team
            self._record_audit(
                actor=principal,
                action="team.create",
                entity_kind="team",
                entity_id=team.id,
                detail=name,
            )
            return team

    def teams(self) -> list[Team]:
        with self._lock:
            return list(self._teams.values())

    def audit_records(self) -> list[AuditRecord]:
        with self._lock:
            return list(self._audit)

    def _authorize(self, principal: str, operation: str) -> None:
        with self._lock:
            member = self._members.get(principal)
        allowed = self._authorizer.is_allowed(
            principal=principal,
            role=None if member is None else member.role,
            operation=operation,
            botbox_id=self._id,
        )
        if not allowed:
            with log_context(
                {fields.BOTBOX_ID: self._id, fields.PRINCIPAL: principal}
            ):
                _LOGGER.warning("operation denied: %s", operation)
            raise AuthorizationDenied(principal=principal, operation=operation)

    def _deployment_for(self, bot_id: str) -> Deployment | None:
        for deployment in self._worker.deployments():
            if deployment.bot_id == bot_id:
                return deployment
        return None

    def _pending_invitation(self, invitation_id: str) -> Invitation:
        invitation = self._invitations.get(invitation_id)
        if invitation is None or invitation.status != InvitationStatus.PENDING:
            raise InvitationNotFound(invitation_id=invitation_id)
        return invitation

    def _record_audit(
        self,
        *,
        actor: str,
        action: str,
        entity_kind: str,
        entity_id: str,
        detail: str = "",
    ) -> None:
        now = self._clock.now()
        self._audit.append(
            AuditRecord(
                id=self._clock.new_id(),
                occurred_at=now,
                actor=actor,
                action=action,
                entity_kind=entity_kind,
                entity_id=entity_id,
                detail=detail,
            )
        )
        self._updated_at = max(now, self._updated_at)

    def _publish(self, event: BotBoxEvent, attributes: dict[str, str]) -> None:
        self._sequence += 1
        self._publisher.publish(
            Transition(
                entity_kind=EntityKind.BOTBOX,
                entity_id=self._id,
                from_state="",
                to_state=event,
                occurred_at=self._clock.now(),
                sequence=self._sequence,
                attributes={key: str(value) for key, value in attributes.items()},
            )
        )
