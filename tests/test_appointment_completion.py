"""
Tests de servicio del cierre de cita: validación, merge con la fórmula
del paciente, procedencia y atomicidad.
"""

from uuid import uuid4

import pytest
from sqlalchemy import select, update

from app.core.exceptions import ConflictException, NotFoundException, ValidationException
from app.models.appointment import Appointment, AppointmentStatus
from app.models.audit_log import AuditLog
from app.models.catalog import Complaint
from app.models.formula import Formula
from app.models.user import User
from app.schemas.appointment import AppointmentComplete
from app.schemas.formula import ToothEntry, ToothStatusEntry, dump_teeth, load_teeth
from app.services import appointment_service, formula_service


def _delta(*teeth: ToothEntry) -> list[ToothEntry]:
    return list(teeth)


def _tooth(number: int, **regions) -> ToothEntry:
    return ToothEntry(number=number, **regions)


def _st(status) -> ToothStatusEntry:
    return ToothStatusEntry(status_id=status.id)


async def _reload(db, model, pk):
    result = await db.execute(select(model).where(model.id == pk))
    return result.scalar_one()


async def _chart(db, user_id) -> dict[int, ToothEntry]:
    formula = await formula_service.get_formula_by_user(db, user_id)
    return {t.number: t for t in formula.teeth}


# ── Validación de números de pieza ───────────────────

@pytest.mark.parametrize("numbers", [[0, 5], [5, 33], [5, 5]])
async def test_invalid_teeth_numbers_rejected(db_session, appointment, patient, doctor_user, numbers):
    data = AppointmentComplete(client_id=patient.id, teeth_numbers=numbers)

    with pytest.raises(ValidationException):
        await appointment_service.complete_appointment(
            db_session, appointment.id, doctor_user, data
        )

    stored = await _reload(db_session, Appointment, appointment.id)
    assert stored.status == AppointmentStatus.SCHEDULED


async def test_boundary_teeth_numbers_accepted(db_session, appointment, patient, doctor_user):
    data = AppointmentComplete(client_id=patient.id, teeth_numbers=[1, 32])

    result = await appointment_service.complete_appointment(
        db_session, appointment.id, doctor_user, data
    )

    assert result.status == AppointmentStatus.COMPLETED
    assert result.teeth_numbers == [1, 32]


async def test_invalid_formula_tooth_number_rejected(
    db_session, appointment, patient, doctor_user, statuses
):
    data = AppointmentComplete(
        client_id=patient.id,
        formula=_delta(_tooth(33, whole=_st(statuses["caries"]))),
    )

    with pytest.raises(ValidationException):
        await appointment_service.complete_appointment(
            db_session, appointment.id, doctor_user, data
        )


async def test_duplicate_formula_teeth_rejected(
    db_session, appointment, patient, doctor_user, statuses
):
    data = AppointmentComplete(
        client_id=patient.id,
        formula=_delta(
            _tooth(4, whole=_st(statuses["caries"])),
            _tooth(4, gum=_st(statuses["healthy"])),
        ),
    )

    with pytest.raises(ValidationException):
        await appointment_service.complete_appointment(
            db_session, appointment.id, doctor_user, data
        )


# ── Guardas de la cita ───────────────────────────────

async def test_unknown_appointment_not_found(db_session, patient, doctor_user):
    data = AppointmentComplete(client_id=patient.id)

    with pytest.raises(NotFoundException):
        await appointment_service.complete_appointment(db_session, uuid4(), doctor_user, data)


@pytest.mark.parametrize("status", [AppointmentStatus.COMPLETED, AppointmentStatus.CANCELED])
async def test_terminal_appointment_cannot_be_completed(
    db_session, appointment_factory, patient, doctor_user, status
):
    closed = await appointment_factory(patient, status=status)
    data = AppointmentComplete(client_id=patient.id, teeth_numbers=[3])

    with pytest.raises(ConflictException):
        await appointment_service.complete_appointment(db_session, closed.id, doctor_user, data)


async def test_in_progress_appointment_can_be_completed(
    db_session, appointment_factory, patient, doctor_user
):
    running = await appointment_factory(patient, status=AppointmentStatus.IN_PROGRESS)

    result = await appointment_service.complete_appointment(
        db_session, running.id, doctor_user, AppointmentComplete(client_id=patient.id)
    )

    assert result.status == AppointmentStatus.COMPLETED
    assert result.completed_at is not None


async def test_client_mismatch_rejected(
    db_session, appointment, patient_without_formula, doctor_user, statuses
):
    data = AppointmentComplete(
        client_id=patient_without_formula.id,
        formula=_delta(_tooth(2, whole=_st(statuses["caries"]))),
    )

    with pytest.raises(ValidationException):
        await appointment_service.complete_appointment(
            db_session, appointment.id, doctor_user, data
        )


# ── Merge con la fórmula ─────────────────────────────

async def test_completion_merges_delta_and_keeps_snapshot(
    db_session, appointment, patient, doctor_user, statuses
):
    data = AppointmentComplete(
        client_id=patient.id,
        anamnesis="Dolor al masticar",
        diagnosis_id=statuses["caries"].id,
        teeth_numbers=[14],
        formula=_delta(_tooth(14, segments={"mid": _st(statuses["caries"])})),
    )

    result = await appointment_service.complete_appointment(
        db_session, appointment.id, doctor_user, data
    )

    # La cita guarda solo el delta de la visita
    assert [t.number for t in result.formula] == [14]
    assert result.anamnesis == "Dolor al masticar"
    assert result.diagnosis_id == statuses["caries"].id

    chart = await _chart(db_session, patient.id)
    assert len(chart) == 32
    assert chart[14].segments["mid"].status_id == statuses["caries"].id
    assert chart[13].statuses() == []


async def test_first_visit_creates_formula(
    db_session, appointment_factory, patient_without_formula, doctor_user, statuses
):
    patient_id = patient_without_formula.id
    visit = await appointment_factory(patient_without_formula)
    data = AppointmentComplete(
        client_id=patient_id,
        formula=_delta(_tooth(8, whole=_st(statuses["crown"]))),
    )

    await appointment_service.complete_appointment(db_session, visit.id, doctor_user, data)

    patient = await _reload(db_session, User, patient_id)
    assert patient.formula_id is not None
    chart = await _chart(db_session, patient_id)
    assert len(chart) == 32
    assert chart[8].whole.status_id == statuses["crown"].id


async def test_completion_without_formula_leaves_chart_untouched(
    db_session, appointment, patient, doctor_user
):
    before = await formula_service.get_formula_by_user(db_session, patient.id)

    result = await appointment_service.complete_appointment(
        db_session, appointment.id, doctor_user, AppointmentComplete(client_id=patient.id)
    )

    after = await formula_service.get_formula_by_user(db_session, patient.id)
    assert result.formula is None
    assert after.teeth == before.teeth
    assert after.version_id == before.version_id


async def test_statuses_stamped_with_appointment_and_completion_time(
    db_session, appointment, patient, doctor_user, statuses
):
    data = AppointmentComplete(
        client_id=patient.id,
        formula=_delta(
            _tooth(
                3,
                whole=_st(statuses["filled"]),
                roots=[_st(statuses["caries"]), _st(statuses["healthy"])],
                segments={"rt": _st(statuses["caries"])},
            ),
            _tooth(30, gum=_st(statuses["healthy"])),
        ),
    )

    result = await appointment_service.complete_appointment(
        db_session, appointment.id, doctor_user, data
    )

    chart = await _chart(db_session, patient.id)
    stamped = chart[3].statuses() + chart[30].statuses()
    assert len(stamped) == 5
    assert {s.appointment_id for s in stamped} == {appointment.id}
    assert len({s.timestamp for s in stamped}) == 1
    assert stamped[0].timestamp.replace(tzinfo=None) == result.completed_at.replace(tzinfo=None)


async def test_two_visits_accumulate_on_chart(
    db_session, appointment, appointment_factory, patient, doctor_user, statuses
):
    await appointment_service.complete_appointment(
        db_session,
        appointment.id,
        doctor_user,
        AppointmentComplete(
            client_id=patient.id,
            formula=_delta(_tooth(
                19,
                whole=_st(statuses["caries"]),
                segments={"mid": _st(statuses["caries"]), "lb": _st(statuses["caries"])},
            )),
        ),
    )

    second = await appointment_factory(patient)
    result = await appointment_service.complete_appointment(
        db_session,
        second.id,
        doctor_user,
        AppointmentComplete(
            client_id=patient.id,
            formula=_delta(_tooth(19, segments={"mid": _st(statuses["filled"])})),
        ),
    )

    chart = await _chart(db_session, patient.id)
    tooth = chart[19]
    assert tooth.whole.status_id == statuses["caries"].id
    assert tooth.whole.appointment_id == appointment.id
    assert tooth.segments["mid"].status_id == statuses["filled"].id
    assert tooth.segments["mid"].appointment_id == second.id
    assert tooth.segments["lb"].status_id == statuses["caries"].id

    # El snapshot de la segunda visita no incluye lo registrado en la primera
    assert result.formula[0].whole is None
    assert set(result.formula[0].segments) == {"mid"}


async def test_completion_is_audited(db_session, appointment, patient, doctor_user):
    await appointment_service.complete_appointment(
        db_session, appointment.id, doctor_user, AppointmentComplete(client_id=patient.id)
    )

    result = await db_session.execute(
        select(AuditLog).where(
            AuditLog.entity == "appointment",
            AuditLog.entity_id == str(appointment.id),
            AuditLog.action == "complete",
        )
    )
    entry = result.scalar_one()
    assert entry.user_id == doctor_user.id


# ── Fallas ───────────────────────────────────────────

async def test_dangling_formula_reference_not_found(
    db_session, appointment, patient, doctor_user, statuses
):
    patient.formula_id = uuid4()
    await db_session.commit()

    data = AppointmentComplete(
        client_id=patient.id,
        formula=_delta(_tooth(1, whole=_st(statuses["caries"]))),
    )

    with pytest.raises(NotFoundException):
        await appointment_service.complete_appointment(
            db_session, appointment.id, doctor_user, data
        )


async def test_concurrent_formula_write_is_a_conflict_and_nothing_persists(
    db_session, appointment, patient, doctor_user, statuses
):
    appointment_id = appointment.id
    patient_id = patient.id
    formula_id = patient.formula_id
    caries_id = statuses["caries"].id

    # Otra transacción escribió la fórmula después de que esta sesión la leyó
    formula = await db_session.get(Formula, formula_id)
    await db_session.execute(
        update(Formula)
        .where(Formula.id == formula_id)
        .values(version_id=Formula.version_id + 1)
        .execution_options(synchronize_session=False)
    )

    data = AppointmentComplete(
        client_id=patient_id,
        formula=_delta(_tooth(10, whole=ToothStatusEntry(status_id=caries_id))),
    )
    with pytest.raises(ConflictException):
        await appointment_service.complete_appointment(
            db_session, appointment_id, doctor_user, data
        )
    await db_session.rollback()

    stored = await _reload(db_session, Appointment, appointment_id)
    assert stored.status == AppointmentStatus.SCHEDULED
    assert stored.formula is None

    stored_formula = await _reload(db_session, Formula, formula_id)
    assert stored_formula is formula
    assert all(t.statuses() == [] for t in load_teeth(stored_formula.teeth))


async def test_concurrent_completion_of_same_appointment_is_a_conflict(
    db_session, session_factory, appointment, patient, doctor_user
):
    appointment_id = appointment.id
    patient_id = patient.id

    async with session_factory() as other:
        # La otra sesión lee la cita mientras sigue agendada
        stale = await other.get(Appointment, appointment_id)
        assert stale.status == AppointmentStatus.SCHEDULED

        await appointment_service.complete_appointment(
            db_session,
            appointment_id,
            doctor_user,
            AppointmentComplete(client_id=patient_id, anamnesis="Visita A"),
        )
        await db_session.commit()

        with pytest.raises(ConflictException):
            await appointment_service.complete_appointment(
                other,
                appointment_id,
                doctor_user,
                AppointmentComplete(client_id=patient_id, anamnesis="Visita B"),
            )
        await other.rollback()

    async with session_factory() as fresh:
        stored = await fresh.get(Appointment, appointment_id)
        assert stored.status == AppointmentStatus.COMPLETED
        assert stored.anamnesis == "Visita A"


async def test_concurrent_first_formula_is_a_conflict(
    db_session, patient_without_formula, appointment_factory, doctor_user, statuses
):
    patient_id = patient_without_formula.id
    appointment = await appointment_factory(patient_without_formula)
    appointment_id = appointment.id

    # Otra transacción ya creó la fórmula, pero la ficha leída no la enlaza
    db_session.add(Formula(user_id=patient_id, teeth=[]))
    await db_session.commit()

    data = AppointmentComplete(
        client_id=patient_id,
        formula=_delta(_tooth(4, whole=_st(statuses["caries"]))),
    )
    with pytest.raises(ConflictException):
        await appointment_service.complete_appointment(
            db_session, appointment_id, doctor_user, data
        )
    await db_session.rollback()

    stored = await _reload(db_session, Appointment, appointment_id)
    assert stored.status == AppointmentStatus.SCHEDULED


# ── Referencias a catálogos ──────────────────────────

async def test_unknown_tooth_status_rejected_before_any_write(
    db_session, appointment, patient, doctor_user, statuses
):
    appointment_id = appointment.id
    patient_id = patient.id
    bogus = uuid4()
    data = AppointmentComplete(
        client_id=patient_id,
        formula=_delta(
            _tooth(3, whole=ToothStatusEntry(status_id=bogus)),
            _tooth(4, gum=_st(statuses["healthy"])),
        ),
    )

    with pytest.raises(NotFoundException) as exc_info:
        await appointment_service.complete_appointment(
            db_session, appointment_id, doctor_user, data
        )
    assert str(bogus) in exc_info.value.detail

    stored = await _reload(db_session, Appointment, appointment_id)
    assert stored.status == AppointmentStatus.SCHEDULED
    chart = await _chart(db_session, patient_id)
    assert chart[3].whole is None
    assert chart[4].gum is None


@pytest.mark.parametrize("field", ["diagnosis_id", "treatment_id", "complaint_id"])
async def test_unknown_catalog_reference_rejected(
    db_session, appointment, patient, doctor_user, field
):
    appointment_id = appointment.id
    data = AppointmentComplete(client_id=patient.id, **{field: uuid4()})

    with pytest.raises(NotFoundException):
        await appointment_service.complete_appointment(
            db_session, appointment_id, doctor_user, data
        )

    stored = await _reload(db_session, Appointment, appointment_id)
    assert stored.status == AppointmentStatus.SCHEDULED


async def test_known_complaint_and_treatment_accepted(
    db_session, appointment, patient, doctor_user, statuses
):
    complaint = Complaint(title="Dolor al masticar", category="pain")
    db_session.add(complaint)
    await db_session.commit()

    result = await appointment_service.complete_appointment(
        db_session,
        appointment.id,
        doctor_user,
        AppointmentComplete(
            client_id=patient.id,
            complaint_id=complaint.id,
            treatment_id=statuses["filled"].id,
        ),
    )

    assert result.complaint_id == complaint.id
    assert result.treatment_id == statuses["filled"].id


async def test_end_to_end_visit_on_existing_chart(
    db_session, appointment, patient, doctor_user, statuses
):
    formula = await db_session.get(Formula, patient.formula_id)
    teeth = load_teeth(formula.teeth)
    teeth[2] = _tooth(3, whole=_st(statuses["caries"]))
    formula.teeth = dump_teeth(teeth)
    await db_session.commit()

    delta = _delta(
        _tooth(3, segments={"mid": _st(statuses["filled"])}),
        _tooth(7, whole=_st(statuses["healthy"])),
    )
    result = await appointment_service.complete_appointment(
        db_session,
        appointment.id,
        doctor_user,
        AppointmentComplete(client_id=patient.id, formula=delta),
    )

    chart = await _chart(db_session, patient.id)
    assert chart[3].whole.status_id == statuses["caries"].id
    assert chart[3].segments["mid"].status_id == statuses["filled"].id
    assert chart[7].whole.status_id == statuses["healthy"].id

    assert result.status == AppointmentStatus.COMPLETED
    assert [t.number for t in result.formula] == [3, 7]
    assert result.formula[0].whole is None
    assert result.formula[0].segments["mid"].status_id == statuses["filled"].id
    assert result.formula[1].whole.status_id == statuses["healthy"].id
