"""
ISO 9001:2015 reference data — auditable clauses 4–10 and sample questions.

Clauses 0–3 are introductory and not auditable.

SECTIONS   clause tree; ``parent`` is the parent clause number (None at top level)
QUESTIONS  3-level scoring criteria per question; ``section`` is the clause number
"""

SECTIONS = [
    {"number": "4", "parent": None, "order": 1, "title": "Context of the Organization",
     "description": "Understanding the organization, interested parties and the scope of the QMS"},
    {"number": "4.1", "parent": "4", "order": 1, "title": "Understanding the organization and its context"},
    {"number": "4.2", "parent": "4", "order": 2, "title": "Understanding the needs and expectations of interested parties"},
    {"number": "4.3", "parent": "4", "order": 3, "title": "Determining the scope of the quality management system"},
    {"number": "4.4", "parent": "4", "order": 4, "title": "Quality management system and its processes"},

    {"number": "5", "parent": None, "order": 2, "title": "Leadership",
     "description": "Top management commitment, quality policy, roles and authorities"},
    {"number": "5.1", "parent": "5", "order": 1, "title": "Leadership and commitment"},
    {"number": "5.1.1", "parent": "5.1", "order": 1, "title": "General"},
    {"number": "5.1.2", "parent": "5.1", "order": 2, "title": "Customer focus"},
    {"number": "5.2", "parent": "5", "order": 2, "title": "Policy"},
    {"number": "5.2.1", "parent": "5.2", "order": 1, "title": "Establishing the quality policy"},
    {"number": "5.2.2", "parent": "5.2", "order": 2, "title": "Communicating the quality policy"},
    {"number": "5.3", "parent": "5", "order": 3, "title": "Organizational roles, responsibilities and authorities"},

    {"number": "6", "parent": None, "order": 3, "title": "Planning",
     "description": "Risks and opportunities, quality objectives and planning of changes"},
    {"number": "6.1", "parent": "6", "order": 1, "title": "Actions to address risks and opportunities"},
    {"number": "6.2", "parent": "6", "order": 2, "title": "Quality objectives and planning to achieve them"},
    {"number": "6.3", "parent": "6", "order": 3, "title": "Planning of changes"},

    {"number": "7", "parent": None, "order": 4, "title": "Support",
     "description": "Resources, competence, awareness, communication and documented information"},
    {"number": "7.1", "parent": "7", "order": 1, "title": "Resources"},
    {"number": "7.1.1", "parent": "7.1", "order": 1, "title": "General"},
    {"number": "7.1.2", "parent": "7.1", "order": 2, "title": "People"},
    {"number": "7.1.3", "parent": "7.1", "order": 3, "title": "Infrastructure"},
    {"number": "7.1.4", "parent": "7.1", "order": 4, "title": "Environment for the operation of processes"},
    {"number": "7.1.5", "parent": "7.1", "order": 5, "title": "Monitoring and measuring resources"},
    {"number": "7.1.6", "parent": "7.1", "order": 6, "title": "Organizational knowledge"},
    {"number": "7.2", "parent": "7", "order": 2, "title": "Competence"},
    {"number": "7.3", "parent": "7", "order": 3, "title": "Awareness"},
    {"number": "7.4", "parent": "7", "order": 4, "title": "Communication"},
    {"number": "7.5", "parent": "7", "order": 5, "title": "Documented information"},
    {"number": "7.5.1", "parent": "7.5", "order": 1, "title": "General"},
    {"number": "7.5.2", "parent": "7.5", "order": 2, "title": "Creating and updating"},
    {"number": "7.5.3", "parent": "7.5", "order": 3, "title": "Control of documented information"},

    {"number": "8", "parent": None, "order": 5, "title": "Operation",
     "description": "Operational planning, requirements, design, external providers, production and release"},
    {"number": "8.1", "parent": "8", "order": 1, "title": "Operational planning and control"},
    {"number": "8.2", "parent": "8", "order": 2, "title": "Requirements for products and services"},
    {"number": "8.2.1", "parent": "8.2", "order": 1, "title": "Customer communication"},
    {"number": "8.2.2", "parent": "8.2", "order": 2, "title": "Determining the requirements for products and services"},
    {"number": "8.2.3", "parent": "8.2", "order": 3, "title": "Review of the requirements for products and services"},
    {"number": "8.2.4", "parent": "8.2", "order": 4, "title": "Changes to requirements for products and services"},
    {"number": "8.3", "parent": "8", "order": 3, "title": "Design and development of products and services"},
    {"number": "8.4", "parent": "8", "order": 4,
     "title": "Control of externally provided processes, products and services"},
    {"number": "8.4.1", "parent": "8.4", "order": 1, "title": "General"},
    {"number": "8.4.2", "parent": "8.4", "order": 2, "title": "Type and extent of control"},
    {"number": "8.4.3", "parent": "8.4", "order": 3, "title": "Information for external providers"},
    {"number": "8.5", "parent": "8", "order": 5, "title": "Production and service provision"},
    {"number": "8.5.1", "parent": "8.5", "order": 1, "title": "Control of production and service provision"},
    {"number": "8.5.2", "parent": "8.5", "order": 2, "title": "Identification and traceability"},
    {"number": "8.6", "parent": "8", "order": 6, "title": "Release of products and services"},
    {"number": "8.7", "parent": "8", "order": 7, "title": "Control of nonconforming outputs"},

    {"number": "9", "parent": None, "order": 6, "title": "Performance Evaluation",
     "description": "Monitoring and measurement, internal audit and management review"},
    {"number": "9.1", "parent": "9", "order": 1, "title": "Monitoring, measurement, analysis and evaluation"},
    {"number": "9.1.1", "parent": "9.1", "order": 1, "title": "General"},
    {"number": "9.1.2", "parent": "9.1", "order": 2, "title": "Customer satisfaction"},
    {"number": "9.1.3", "parent": "9.1", "order": 3, "title": "Analysis and evaluation"},
    {"number": "9.2", "parent": "9", "order": 2, "title": "Internal audit"},
    {"number": "9.3", "parent": "9", "order": 3, "title": "Management review"},

    {"number": "10", "parent": None, "order": 7, "title": "Improvement",
     "description": "Nonconformity, corrective action and continual improvement"},
    {"number": "10.1", "parent": "10", "order": 1, "title": "General"},
    {"number": "10.2", "parent": "10", "order": 2, "title": "Nonconformity and corrective action"},
    {"number": "10.3", "parent": "10", "order": 3, "title": "Continual improvement"},
]


QUESTIONS = [
    {"number": "4.1-01", "section": "4.1", "order": 1,
     "text": "Has the organization determined external and internal issues relevant to its purpose and strategic direction?",
     "guidance": "Look for a SWOT/PESTLE or equivalent analysis and evidence that it is reviewed.",
     "criteria": ("No analysis of issues exists, or it is badly out of date",
                  "Issues are partly identified but not reviewed or not linked to the QMS",
                  "Issues are documented, reviewed on a schedule and feed QMS planning")},
    {"number": "4.2-01", "section": "4.2", "order": 1,
     "text": "Has the organization identified interested parties relevant to the QMS and their requirements?",
     "guidance": "Check for a stakeholder register covering customers, regulators and suppliers.",
     "criteria": ("Interested parties are not identified",
                  "Some parties are listed but their requirements are vague",
                  "All relevant parties and their requirements are recorded and monitored")},
    {"number": "4.3-01", "section": "4.3", "order": 1,
     "text": "Is the scope of the QMS defined, documented and available?",
     "guidance": "Review the scope statement including boundaries and justified exclusions.",
     "criteria": ("No documented scope",
                  "Scope exists but omits boundaries or exclusion justifications",
                  "Scope is complete, justified and available as documented information")},
    {"number": "5.1.1-01", "section": "5.1.1", "order": 1,
     "text": "Does top management demonstrate accountability for the effectiveness of the QMS?",
     "guidance": "Interview top management; review management review minutes and resource decisions.",
     "criteria": ("Top management is not involved in the QMS",
                  "Involvement is occasional or delegated entirely",
                  "Top management actively leads, reviews and resources the QMS")},
    {"number": "5.2.1-01", "section": "5.2.1", "order": 1,
     "text": "Is a quality policy established that is appropriate to the purpose and context of the organization?",
     "guidance": "Check the policy includes commitments to requirements and continual improvement.",
     "criteria": ("No quality policy exists",
                  "A policy exists but lacks required commitments",
                  "The policy is appropriate, complete and provides a framework for objectives")},
    {"number": "6.1-01", "section": "6.1", "order": 1,
     "text": "Are risks and opportunities determined and actions planned to address them?",
     "guidance": "Review the risk register and evidence that actions are evaluated for effectiveness.",
     "criteria": ("Risks and opportunities are not determined",
                  "Risks are listed but actions are not planned or evaluated",
                  "Risks and opportunities drive planned actions whose effectiveness is evaluated")},
    {"number": "6.2-01", "section": "6.2", "order": 1,
     "text": "Are measurable quality objectives established at relevant functions and levels?",
     "guidance": "Sample objectives for measurability, ownership, timelines and monitoring.",
     "criteria": ("No quality objectives",
                  "Objectives exist but are not measurable or not monitored",
                  "Objectives are measurable, owned, resourced and tracked")},
    {"number": "7.2-01", "section": "7.2", "order": 1,
     "text": "Is the competence of persons doing work under the organization's control determined and ensured?",
     "guidance": "Sample training records and competence matrices against role requirements.",
     "criteria": ("Competence requirements are not defined",
                  "Requirements are defined but evidence of competence is incomplete",
                  "Competence is defined, evidenced and gaps are closed with evaluated actions")},
    {"number": "7.5.1-01", "section": "7.5.1", "order": 1,
     "text": "Does the QMS include the documented information required by the standard and by the organization?",
     "guidance": "Trace required documented information to controlled documents and records.",
     "criteria": ("Required documented information is missing",
                  "Documented information exists but control is inconsistent",
                  "Documented information is complete, controlled and current")},
    {"number": "8.1-01", "section": "8.1", "order": 1,
     "text": "Are the processes needed to meet product and service requirements planned, implemented and controlled?",
     "guidance": "Review process criteria, acceptance criteria and operational controls.",
     "criteria": ("Operational processes are not planned",
                  "Planning exists for some processes or controls are not applied",
                  "All operational processes are planned with criteria and controlled")},
    {"number": "8.7-01", "section": "8.7", "order": 1,
     "text": "Are outputs that do not conform to requirements identified and controlled to prevent unintended use?",
     "guidance": "Check nonconforming output records, segregation and disposition decisions.",
     "criteria": ("Nonconforming outputs are not identified or controlled",
                  "Outputs are identified but disposition is undocumented",
                  "Nonconforming outputs are identified, controlled and dispositions recorded")},
    {"number": "9.2-01", "section": "9.2", "order": 1,
     "text": "Does the organization conduct internal audits at planned intervals?",
     "guidance": "Review the audit programme, auditor independence, reports and follow-up.",
     "criteria": ("No internal audits are conducted",
                  "Audits happen but not to plan or without follow-up",
                  "A planned audit programme is executed with objective auditors and tracked follow-up")},
    {"number": "9.3-01", "section": "9.3", "order": 1,
     "text": "Does top management review the QMS at planned intervals?",
     "guidance": "Check review minutes for required inputs and decisions on improvement and resources.",
     "criteria": ("No management reviews take place",
                  "Reviews occur but omit required inputs or outputs",
                  "Reviews are planned, cover all inputs and produce recorded decisions")},
    {"number": "10.2-01", "section": "10.2", "order": 1,
     "text": "When a nonconformity occurs, does the organization react, evaluate root causes and take corrective action?",
     "guidance": "Sample NCRs for containment, root cause analysis and effectiveness review.",
     "criteria": ("Nonconformities are not recorded or acted upon",
                  "Corrective actions are taken without root cause analysis or effectiveness review",
                  "Root causes are analysed, actions taken and their effectiveness verified")},
    {"number": "10.3-01", "section": "10.3", "order": 1,
     "text": "Does the organization continually improve the suitability, adequacy and effectiveness of the QMS?",
     "guidance": "Look for improvement initiatives driven by analysis and management review outputs.",
     "criteria": ("No evidence of improvement activity",
                  "Improvements are ad hoc and not driven by data",
                  "Improvement is systematic and driven by analysis and review outputs")},
]
