"""Deterministic capability rules for the host application.

What each module allows or blocks, per entity and action. This table is the
authoritative source for "can I do X?" questions; retrieved documentation is
only used for explanations and walkthroughs. The relevant modules are rendered
into the system prompt.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ActionRule:
    """Allow/block conditions for one action on an entity."""

    allowed_if: str | None = None
    blocked_if: str | None = None
    resolution: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class EntityCapabilities:
    """States, transitions and action rules for one domain entity."""

    actions: dict[str, ActionRule]
    states: str | None = None
    transitions: str | None = None


@dataclass(frozen=True)
class ModuleCapabilities:
    """Capability rules for one module."""

    name: str
    routes: list[str] = field(default_factory=list)
    entities: dict[str, EntityCapabilities] = field(default_factory=dict)


CAPABILITY_HEADER = (
    "REGLAS DE LA APLICACIÓN (fuente de verdad: tienen prioridad sobre la documentación)"
)


CAPABILITY_MAP: dict[str, ModuleCapabilities] = {
    "appointments": ModuleCapabilities(
        name="Citas",
        routes=["/appointments"],
        entities={
            "Horario (Slot)": EntityCapabilities(
                states=(
                    "Disponible (isOpen=true, sin reservas) | "
                    "Lleno (isOpen=true, reservas al máximo) | "
                    "Cerrado (isOpen=false, no acepta reservas)"
                ),
                actions={
                    "crear": ActionRule(
                        allowed_if='Siempre. Botón "Crear Horarios" (manual) o "Asistente de Voz" (dictado).',
                        notes=(
                            "Creación manual: fecha, hora inicio, duración, precio, descuento, máx reservas. "
                            "Creación por voz: dictar rango de fechas, días de la semana, horario y precio; "
                            "el asistente genera todos los horarios."
                        ),
                    ),
                    "eliminar": ActionRule(
                        allowed_if="Siempre, incluso si tiene reservas activas.",
                        notes=(
                            "Con reservas activas el sistema pregunta: "
                            '"Este horario tiene N cita(s) activa(s). ¿Cancelar las citas y eliminar el horario?" '
                            "Al confirmar cancela todas las reservas y después elimina el horario. "
                            "Sin reservas solo pide una confirmación simple."
                        ),
                    ),
                    "cerrar": ActionRule(
                        allowed_if="Solo si el horario NO tiene reservas activas (currentBookings = 0).",
                        blocked_if="El horario tiene reservas activas (currentBookings > 0).",
                        resolution=(
                            'Primero cancela las reservas activas del horario desde la tabla "Citas Reservadas" '
                            "y luego cierra el horario."
                        ),
                        notes=(
                            'Mensaje de error: "No se puede cerrar este horario porque tiene N reserva(s) '
                            'activa(s). Por favor cancela las reservas primero."'
                        ),
                    ),
                    "abrir": ActionRule(
                        allowed_if="Siempre, incluso si tiene reservas existentes.",
                    ),
                    "acción masiva: cerrar varios": ActionRule(
                        blocked_if="Alguno de los horarios seleccionados tiene reservas activas.",
                        resolution="Deselecciona los horarios con reservas o cancela sus reservas primero.",
                        notes=(
                            'Mensaje: "No se pueden cerrar N horario(s) porque tienen reservas activas. '
                            'Por favor cancela las reservas primero o deselecciona esos horarios."'
                        ),
                    ),
                    "acción masiva: eliminar varios": ActionRule(
                        allowed_if="Siempre; requiere confirmar el número de horarios.",
                    ),
                    "acción masiva: abrir varios": ActionRule(allowed_if="Siempre."),
                },
            ),
            "Reservación (Booking)": EntityCapabilities(
                states=(
                    "PENDING (Pendiente: el paciente agendó, sin confirmar) | "
                    "CONFIRMED (Confirmada por el médico) | "
                    "COMPLETED (Completada: el paciente asistió) | "
                    "CANCELLED (Cancelada) | "
                    "NO_SHOW (No asistió)"
                ),
                transitions=(
                    "PENDING → Confirmar (CONFIRMED) o Cancelar (CANCELLED) | "
                    "CONFIRMED → Completada (COMPLETED), No Asistió (NO_SHOW) o Cancelar (CANCELLED) | "
                    "COMPLETED / CANCELLED / NO_SHOW → sin acciones disponibles"
                ),
                actions={
                    "confirmar": ActionRule(
                        allowed_if="Solo desde estado PENDING.",
                        blocked_if="Estado CONFIRMED, COMPLETED, CANCELLED o NO_SHOW.",
                    ),
                    "cancelar": ActionRule(
                        allowed_if="Desde PENDING o CONFIRMED.",
                        blocked_if="Estado COMPLETED, CANCELLED o NO_SHOW.",
                        notes=(
                            "Al cancelar, el horario vuelve a estar Disponible. "
                            'Confirmación: "¿Estás seguro de que quieres cancelar esta cita?"'
                        ),
                    ),
                    "marcar como completada": ActionRule(
                        allowed_if="Solo desde estado CONFIRMED.",
                        blocked_if="Cualquier otro estado.",
                    ),
                    "marcar no asistió": ActionRule(
                        allowed_if="Solo desde estado CONFIRMED.",
                        blocked_if="Cualquier otro estado.",
                    ),
                    "crear reservación directamente": ActionRule(
                        blocked_if="Siempre: el médico no puede crear reservaciones.",
                        notes=(
                            "Solo los pacientes agendan desde el perfil público del médico. "
                            "El médico puede ver, confirmar y cancelar reservaciones existentes."
                        ),
                    ),
                },
            ),
        },
    ),
    "medical-records": ModuleCapabilities(
        name="Expedientes Médicos",
        routes=["/dashboard/medical-records", "/dashboard/medical-records/patients"],
        entities={
            "Paciente": EntityCapabilities(
                states="active (Activo) | inactive (Inactivo)",
                actions={
                    "crear": ActionRule(
                        allowed_if='Siempre. Botón "Nuevo Paciente" en la lista.',
                        notes=(
                            "Requeridos: nombre, apellido, fecha de nacimiento, sexo. "
                            "El ID interno (formato P{timestamp}) se genera automáticamente y no cambia después."
                        ),
                    ),
                    "editar": ActionRule(
                        allowed_if="Siempre.",
                        notes="El ID interno queda deshabilitado tras la creación.",
                    ),
                    "eliminar": ActionRule(
                        blocked_if="No existe opción para eliminar pacientes en la UI.",
                        notes="Los pacientes solo pueden desactivarse (status: inactive).",
                    ),
                },
            ),
            "Consulta (Encounter)": EntityCapabilities(
                states="draft (Borrador) | completed (Completada) | amended (Enmendada)",
                actions={
                    "crear": ActionRule(
                        allowed_if='Siempre desde el perfil del paciente. Botón "Nueva Consulta".',
                        notes=(
                            "Tipos: Consulta, Seguimiento, Emergencia, Telemedicina. "
                            "La plantilla estándar requiere fecha, tipo y motivo de consulta; "
                            "una plantilla personalizada solo requiere fecha y tipo. "
                            "Crear una consulta actualiza la fecha de última visita del paciente."
                        ),
                    ),
                    "editar": ActionRule(
                        allowed_if="Siempre, en cualquier estado.",
                        notes=(
                            "Cada edición guarda automáticamente la versión anterior, "
                            "accesible desde el botón de versiones de la consulta."
                        ),
                    ),
                    "ver versiones": ActionRule(
                        allowed_if="Siempre. Página /versions desde el detalle de la consulta.",
                        notes="Lista numerada de versiones con fecha, autor y snapshot completo.",
                    ),
                },
            ),
            "Prescripción": EntityCapabilities(
                states="draft (Borrador) | issued (Emitida) | cancelled (Cancelada) | expired (Expirada)",
                actions={
                    "crear": ActionRule(
                        allowed_if="Siempre desde el perfil del paciente.",
                        notes=(
                            "Requeridos: fecha, nombre del médico, cédula profesional y al menos un "
                            "medicamento con nombre, dosis, frecuencia e instrucciones."
                        ),
                    ),
                    "editar": ActionRule(
                        allowed_if="Solo en estado draft (Borrador).",
                        blocked_if="Estado issued, cancelled o expired.",
                        resolution="Cancela la prescripción emitida y crea una nueva.",
                    ),
                    "emitir": ActionRule(
                        allowed_if="Solo en estado draft.",
                        blocked_if="Estado issued, cancelled o expired.",
                        notes=(
                            "Irreversible. Confirmación: "
                            '"¿Está seguro de emitir esta prescripción? No podrá editarla después." '
                            "Una vez emitida se habilita la descarga del PDF."
                        ),
                    ),
                    "descargar PDF": ActionRule(
                        allowed_if="Solo en estado issued (Emitida).",
                        blocked_if="Estado draft, cancelled o expired.",
                        resolution="Emite primero la prescripción y después descarga el PDF.",
                    ),
                    "cancelar": ActionRule(
                        allowed_if="Solo en estado issued.",
                        blocked_if="Estado draft, cancelled o expired.",
                        notes="Requiere un motivo de cancelación (obligatorio).",
                    ),
                    "eliminar": ActionRule(
                        allowed_if="Solo en estado draft (Borrador).",
                        blocked_if="Estado issued, cancelled o expired.",
                        resolution='Para una prescripción emitida usa "Cancelar Prescripción".',
                    ),
                },
            ),
            "Multimedia (Media)": EntityCapabilities(
                actions={
                    "subir": ActionRule(
                        allowed_if='Siempre. Botón "Subir Archivo" en la galería del paciente.',
                        notes=(
                            "Límites: imágenes 10MB, videos 100MB, audio 20MB. "
                            "Tipos aceptados: image/*, video/*, audio/*."
                        ),
                    ),
                    "editar": ActionRule(
                        allowed_if="Siempre: descripción, notas, categoría y área del cuerpo.",
                    ),
                    "eliminar": ActionRule(allowed_if="Siempre; requiere confirmación."),
                },
            ),
            "Plantilla de Consulta": EntityCapabilities(
                actions={
                    "crear": ActionRule(
                        notes=(
                            "Hay un límite de plantillas por médico; el botón "
                            '"Nueva Plantilla" se deshabilita al alcanzarlo.'
                        ),
                    ),
                    "establecer como predeterminada": ActionRule(
                        notes=(
                            "Solo una plantilla puede ser la predeterminada y se preselecciona "
                            "al crear una nueva consulta."
                        ),
                    ),
                    "eliminar": ActionRule(
                        blocked_if="La plantilla es la predeterminada.",
                        resolution="Establece otra plantilla como predeterminada y luego elimina esta.",
                    ),
                },
            ),
        },
    ),
    "practice-management": ModuleCapabilities(
        name="Gestión de Consultorio",
        routes=[
            "/dashboard/practice/ventas",
            "/dashboard/practice/compras",
            "/dashboard/practice/cotizaciones",
            "/dashboard/practice/flujo-de-dinero",
            "/dashboard/practice/products",
            "/dashboard/practice/clients",
            "/dashboard/practice/proveedores",
            "/dashboard/practice/areas",
            "/dashboard/practice/master-data",
        ],
        entities={
            "Venta": EntityCapabilities(
                states=(
                    "PENDING (Pendiente) | CONFIRMED (Confirmada) | PROCESSING (En Proceso) | "
                    "SHIPPED (Enviada) | DELIVERED (Entregada) | CANCELLED (Cancelada)"
                ),
                transitions=(
                    "PENDING → CONFIRMED o CANCELLED | CONFIRMED → PROCESSING o CANCELLED | "
                    "PROCESSING → SHIPPED o CANCELLED | SHIPPED → DELIVERED o CANCELLED | "
                    "DELIVERED / CANCELLED → cualquier estado (reversibles)"
                ),
                actions={
                    "cambiar estado": ActionRule(
                        notes=(
                            "El selector solo ofrece transiciones válidas. No se puede cambiar al mismo "
                            'estado (error: "El estado es el mismo"). Cancelar requiere confirmación.'
                        ),
                    ),
                    "editar monto cobrado": ActionRule(
                        notes=(
                            'Editable en línea en la columna "Cobrado". El estado de pago se calcula solo: '
                            "0 = PENDING | 0 < monto < total = PARTIAL | monto ≥ total = PAID. "
                            "No puede ser negativo ni exceder el total."
                        ),
                    ),
                    "eliminar": ActionRule(allowed_if="Siempre; requiere confirmación."),
                    "exportar PDF": ActionRule(
                        allowed_if="Solo con elementos seleccionados en los checkboxes.",
                        blocked_if="Ningún elemento seleccionado.",
                        resolution="Marca los checkboxes de las ventas a exportar.",
                    ),
                },
            ),
            "Cotización": EntityCapabilities(
                states=(
                    "DRAFT (Borrador) | SENT (Enviada) | APPROVED (Aprobada) | "
                    "REJECTED (Rechazada) | EXPIRED (Vencida) | CANCELLED (Cancelada)"
                ),
                transitions=(
                    "DRAFT → SENT o CANCELLED | SENT → APPROVED, REJECTED, EXPIRED o CANCELLED | "
                    "APPROVED → solo CANCELLED | REJECTED → solo CANCELLED | "
                    "EXPIRED / CANCELLED → cualquier estado (reversibles)"
                ),
                actions={
                    "cambiar estado desde APPROVED": ActionRule(
                        notes=(
                            "Requiere confirmación adicional: "
                            '"¿Estás seguro de que quieres cambiar el estado de APROBADA a {nuevo}?"'
                        ),
                    ),
                    "crear desde cliente": ActionRule(
                        notes="La lista de Clientes tiene un botón para cotizar con el cliente preseleccionado.",
                    ),
                    "convertir a venta": ActionRule(
                        allowed_if="Siempre: botón de carrito en cada cotización de la lista.",
                        notes=(
                            "Crea una venta copiando ítems, precios y cliente, y redirige al detalle de "
                            "la nueva venta. La cotización original se conserva."
                        ),
                    ),
                    "exportar PDF": ActionRule(
                        allowed_if="Solo con cotizaciones seleccionadas en los checkboxes.",
                        blocked_if="Ninguna cotización seleccionada.",
                        resolution="Marca los checkboxes de las cotizaciones a exportar.",
                    ),
                },
            ),
            "Compra": EntityCapabilities(
                states=(
                    "PENDING (Pendiente) | CONFIRMED (Confirmada) | PROCESSING (En Proceso) | "
                    "SHIPPED (Enviada) | RECEIVED (Recibida) | CANCELLED (Cancelada)"
                ),
                transitions=(
                    "PENDING → CONFIRMED o CANCELLED | CONFIRMED → PROCESSING o CANCELLED | "
                    "PROCESSING → SHIPPED o CANCELLED | SHIPPED → RECEIVED o CANCELLED | "
                    "RECEIVED / CANCELLED → cualquier estado (reversibles)"
                ),
                actions={
                    "editar monto pagado": ActionRule(
                        notes="Igual que en ventas: editable en línea, sin exceder el total ni ser negativo.",
                    ),
                    "eliminar o modificar desde Flujo de Dinero": ActionRule(
                        blocked_if=(
                            "Siempre: los movimientos de compras en Flujo de Dinero son registros "
                            "automáticos de solo lectura."
                        ),
                        resolution=(
                            "Ve a Gestión de Consultorio > Compras para cambiar el estado, editar el "
                            "monto pagado o cancelar la compra original."
                        ),
                    ),
                },
            ),
            "Movimiento (Flujo de Dinero)": EntityCapabilities(
                actions={
                    "crear": ActionRule(
                        allowed_if="Siempre.",
                        notes=(
                            "Requeridos: tipo (ingreso/egreso), monto positivo, concepto, fecha, área y "
                            "forma de pago. El área debe coincidir con el tipo (INGRESO o EGRESO)."
                        ),
                    ),
                    "crear lote por voz": ActionRule(
                        notes="El asistente de voz detecta varios movimientos en un dictado y los crea juntos.",
                    ),
                },
            ),
            "Área (Flujo de Dinero)": EntityCapabilities(
                actions={
                    "cambiar tipo (INGRESO/EGRESO)": ActionRule(
                        blocked_if="Siempre: el tipo de área es inmutable después de crearla.",
                        resolution=(
                            "Elimina el área y crea una nueva con el tipo correcto. "
                            "Eliminar un área borra también sus subáreas."
                        ),
                    ),
                    "eliminar área": ActionRule(
                        notes=(
                            "Requiere confirmación: "
                            '"¿Estás seguro de eliminar {nombre}? Esto también eliminará todas las subáreas."'
                        ),
                    ),
                },
            ),
            "Producto / Servicio": EntityCapabilities(
                states="active (Activo) | inactive (Inactivo) | discontinued (Descontinuado)",
                actions={
                    "crear": ActionRule(
                        notes=(
                            'Tipo "product" o "service". Los productos pueden tener componentes que suman '
                            "al costo. Margen = (precio - costo) / precio × 100."
                        ),
                    ),
                },
            ),
            "Cliente / Proveedor": EntityCapabilities(
                states="active (Activo) | inactive (Inactivo)",
                actions={
                    "crear cotización desde cliente": ActionRule(
                        notes="Botón directo en la lista de clientes con el cliente precargado.",
                    ),
                },
            ),
        },
    ),
    "pendientes": ModuleCapabilities(
        name="Pendientes",
        routes=["/dashboard/pendientes"],
        entities={
            "Tarea (Pendiente)": EntityCapabilities(
                states=(
                    "PENDIENTE (por hacer) | EN_PROGRESO (en proceso) | "
                    "COMPLETADA (terminada) | CANCELADA (cancelada)"
                ),
                actions={
                    "crear": ActionRule(
                        allowed_if="Siempre.",
                        notes=(
                            "Requeridos: título, prioridad (ALTA/MEDIA/BAJA) y categoría "
                            "(SEGUIMIENTO, ADMINISTRATIVO, LABORATORIO, RECETA, REFERENCIA, PERSONAL, OTRO)."
                        ),
                    ),
                    "cambiar estado": ActionRule(
                        notes="Clic en el badge de estado de la lista. Se permiten todas las transiciones.",
                    ),
                    "eliminar": ActionRule(
                        allowed_if="Siempre; requiere confirmación: \"¿Eliminar 'título'?\"",
                    ),
                    "eliminar masivo": ActionRule(
                        notes=(
                            "Selecciona tareas con los checkboxes y usa la barra masiva. "
                            'Confirmación: "¿Eliminar N tarea(s) seleccionada(s)?"'
                        ),
                    ),
                    "vencida (overdue)": ActionRule(
                        notes=(
                            "Estado visual, no bloqueo: la fecha de vencimiento pasó y la tarea no está "
                            "COMPLETADA ni CANCELADA. Se resuelve completando o cancelando la tarea."
                        ),
                    ),
                },
            ),
        },
    ),
    "profile": ModuleCapabilities(
        name="Mi Perfil",
        routes=["/dashboard/mi-perfil"],
        entities={
            "Perfil Público": EntityCapabilities(
                actions={
                    "editar": ActionRule(
                        allowed_if="Siempre; cada pestaña tiene su propio botón de guardado.",
                        notes='La pestaña "Opiniones" es de solo lectura.',
                    ),
                    "eliminar reseña": ActionRule(
                        blocked_if="Siempre: el médico no puede eliminar reseñas de pacientes.",
                    ),
                    "cambiar slug": ActionRule(
                        notes="Se puede editar, pero cambiar la URL del perfil rompe los enlaces existentes.",
                    ),
                },
            ),
        },
    ),
}


def get_module_capabilities(module_id: str) -> ModuleCapabilities | None:
    return CAPABILITY_MAP.get(module_id)


def _render_action(action_name: str, rule: ActionRule) -> list[str]:
    lines = [f"  - {action_name}:"]
    if rule.allowed_if:
        lines.append(f"      PERMITIDO: {rule.allowed_if}")
    if rule.blocked_if:
        lines.append(f"      BLOQUEADO: {rule.blocked_if}")
    if rule.resolution:
        lines.append(f"      SOLUCIÓN: {rule.resolution}")
    if rule.notes:
        lines.append(f"      NOTA: {rule.notes}")
    return lines


def _render_module(module: ModuleCapabilities) -> str:
    lines = [f"### {module.name.upper()}"]

    for entity_name, entity in module.entities.items():
        lines.append(f"[{entity_name}]")
        if entity.states:
            lines.append(f"Estados: {entity.states}")
        if entity.transitions:
            lines.append(f"Transiciones: {entity.transitions}")
        for action_name, rule in entity.actions.items():
            lines.extend(_render_action(action_name, rule))

    return "\n".join(lines)


def format_capability_map_for_prompt(module_ids: list[str]) -> str:
    """
    Render the capability rules of the given modules as a prompt block.

    Unknown module ids are skipped; repeated ids are rendered once.

    Args:
        module_ids: Module ids in priority order

    Returns:
        Rules text headed by CAPABILITY_HEADER, or "" when nothing matched
    """
    sections: list[str] = []
    seen: set[str] = set()

    for module_id in module_ids:
        if module_id in seen:
            continue
        seen.add(module_id)

        module = get_module_capabilities(module_id)
        if module is None:
            continue
        sections.append(_render_module(module))

    if not sections:
        return ""

    return CAPABILITY_HEADER + "\n\n" + "\n\n".join(sections)
