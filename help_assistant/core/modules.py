"""Static catalog of the host application's modules.

Used for keyword-based module detection, for the static overview block of the
prompt, and to map UI paths to the modules they belong to.
"""

from help_assistant.core.schemas_assistant import ModuleDefinition, SubmoduleDefinition

DOCS_BASE_PATH = "docs/llm-assistant"


def _docs(*paths: str) -> list[str]:
    return [f"{DOCS_BASE_PATH}/{p}" for p in paths]


MODULE_DEFINITIONS: list[ModuleDefinition] = [
    ModuleDefinition(
        id="medical-records",
        name="Expedientes Médicos",
        description="Gestión de pacientes, consultas clínicas, recetas, multimedia y línea de tiempo",
        keywords=[
            "paciente", "pacientes", "expediente", "expedientes", "consulta", "consultas",
            "encuentro", "receta", "recetas", "prescripción", "medicamento", "medicamentos",
            "SOAP", "subjetivo", "objetivo", "evaluación", "plan", "diagnóstico",
            "signos vitales", "historial", "multimedia", "foto", "fotos", "imagen",
            "línea de tiempo", "timeline", "médico", "clínico", "clínica",
            "alergias", "condiciones crónicas", "tipo de sangre",
        ],
        submodules=[
            SubmoduleDefinition(
                id="patients", name="Pacientes",
                keywords=["paciente", "registro", "crear paciente", "buscar paciente"],
            ),
            SubmoduleDefinition(
                id="encounters", name="Consultas",
                keywords=["consulta", "encuentro", "SOAP", "nota clínica"],
            ),
            SubmoduleDefinition(
                id="prescriptions", name="Recetas",
                keywords=["receta", "prescripción", "medicamento", "PDF receta"],
            ),
            SubmoduleDefinition(
                id="media", name="Multimedia",
                keywords=["foto", "imagen", "video", "multimedia"],
            ),
            SubmoduleDefinition(
                id="timeline", name="Línea de Tiempo",
                keywords=["timeline", "historial", "cronología"],
            ),
        ],
        file_paths=_docs(
            "modules/medical-records/patients.md",
            "modules/medical-records/encounters.md",
            "modules/medical-records/prescriptions.md",
            "modules/medical-records/media.md",
            "modules/medical-records/timeline.md",
        ),
    ),
    ModuleDefinition(
        id="appointments",
        name="Citas",
        description="Gestión de espacios de cita, disponibilidad del doctor y reservaciones de pacientes",
        keywords=[
            "cita", "citas", "horario", "horarios", "agenda", "disponibilidad",
            "espacio", "espacios", "slot", "slots", "reservación", "reservaciones",
            "booking", "agendar", "programar", "cancelar cita", "confirmar",
            "precio", "descuento", "duración",
        ],
        submodules=[
            SubmoduleDefinition(
                id="slots", name="Espacios de Cita",
                keywords=["espacio", "slot", "horario", "disponibilidad"],
            ),
        ],
        file_paths=_docs("modules/appointments/slots.md"),
    ),
    ModuleDefinition(
        id="practice-management",
        name="Gestión de Consultorio",
        description="Ventas, compras, flujo de dinero, productos, clientes y proveedores",
        keywords=[
            "venta", "ventas", "compra", "compras", "flujo", "dinero", "ingreso",
            "egreso", "producto", "productos", "cliente", "clientes", "proveedor",
            "proveedores", "factura", "cotización", "inventario", "precio",
            "IVA", "impuesto", "pago", "cobro", "cuenta bancaria",
            "consultorio", "gestión", "finanzas", "contabilidad",
        ],
        submodules=[
            SubmoduleDefinition(
                id="sales", name="Ventas", keywords=["venta", "ventas", "vender", "cobrar"],
            ),
            SubmoduleDefinition(
                id="purchases", name="Compras",
                keywords=["compra", "compras", "comprar", "proveedor"],
            ),
            SubmoduleDefinition(
                id="cash-flow", name="Flujo de Dinero",
                keywords=["flujo", "dinero", "ingreso", "egreso", "cash flow"],
            ),
            SubmoduleDefinition(
                id="products", name="Productos",
                keywords=["producto", "productos", "inventario", "catálogo"],
            ),
            SubmoduleDefinition(
                id="clients", name="Clientes", keywords=["cliente", "clientes", "CRM"],
            ),
            SubmoduleDefinition(
                id="suppliers", name="Proveedores",
                keywords=["proveedor", "proveedores", "supplier"],
            ),
        ],
        file_paths=_docs(
            "modules/practice-management/overview.md",
            "modules/practice-management/sales.md",
            "modules/practice-management/purchases.md",
            "modules/practice-management/cash-flow.md",
            "modules/practice-management/products.md",
            "modules/practice-management/clients.md",
            "modules/practice-management/suppliers.md",
        ),
    ),
    ModuleDefinition(
        id="blog",
        name="Blog",
        description="Publicación de artículos médicos en el blog personal del doctor",
        keywords=[
            "blog", "artículo", "artículos", "publicar", "publicación",
            "borrador", "draft", "SEO", "contenido", "post",
        ],
        file_paths=_docs("modules/blog.md"),
    ),
    ModuleDefinition(
        id="voice-assistant",
        name="Asistente de Voz",
        description="Dictado por voz con IA para crear registros mediante conversación natural",
        keywords=[
            "voz", "dictado", "dictar", "grabar", "grabación", "micrófono",
            "transcripción", "asistente de voz", "voice", "audio",
            "chat", "conversación",
        ],
        file_paths=_docs("features/voice-assistant.md"),
    ),
    ModuleDefinition(
        id="navigation",
        name="Navegación",
        description="Cómo navegar por la aplicación, estructura del menú y accesos rápidos",
        keywords=[
            "navegar", "navegación", "menú", "sidebar", "barra lateral",
            "dónde", "encontrar", "ir a", "acceder", "página",
        ],
        file_paths=_docs("features/navigation.md"),
    ),
    ModuleDefinition(
        id="general",
        name="General",
        description="Información general sobre el Portal Médico y preguntas frecuentes",
        keywords=[
            "portal", "médico", "app", "aplicación", "plataforma",
            "qué es", "qué puede", "funcionalidad", "características",
            "ayuda", "soporte", "FAQ", "pregunta frecuente",
        ],
        file_paths=_docs("index.md", "faq.md"),
    ),
]

# UI route prefix -> module id, checked in order
PATH_MODULE_PREFIXES: list[tuple[str, str]] = [
    ("/appointments", "appointments"),
    ("/dashboard/medical-records", "medical-records"),
    ("/dashboard/practice", "practice-management"),
    ("/dashboard/blog", "blog"),
    ("/dashboard/pendientes", "pendientes"),
    ("/dashboard/mi-perfil", "profile"),
]

_MODULES_BY_ID: dict[str, ModuleDefinition] = {m.id: m for m in MODULE_DEFINITIONS}


def get_module_by_id(module_id: str) -> ModuleDefinition | None:
    return _MODULES_BY_ID.get(module_id)


def get_all_module_ids() -> list[str]:
    return [m.id for m in MODULE_DEFINITIONS]


def get_module_for_file_path(file_path: str) -> ModuleDefinition | None:
    """Find the module whose documentation list contains (or is contained by) a path."""
    if not file_path:
        return None
    for module in MODULE_DEFINITIONS:
        if any(file_path in fp or fp in file_path for fp in module.file_paths):
            return module
    return None


def get_modules_from_path(path: str | None) -> list[str]:
    """
    Infer module ids from the current UI path.

    Args:
        path: Current URL path, e.g. "/dashboard/practice/ventas"

    Returns:
        Module ids implied by the path (empty when none match)
    """
    if not path:
        return []
    for prefix, module_id in PATH_MODULE_PREFIXES:
        if path.startswith(prefix):
            return [module_id]
    return []
