"""
Streamlit UI: upload garment photos, tag each with its role, enter garment info, grade, and see the result.

Run: streamlit run app.py
"""
from pathlib import Path
import streamlit as st
from gradethread.audit import log_event, read_events
from gradethread.errors import GradingError
from gradethread.pipeline import coverage_gaps, grade_submission
from gradethread.report import render_certificate
from gradethread.review_policy import confidence_band
from gradethread.schemas import GARMENT_TYPES, IMAGE_ROLES, GarmentInfo, SubmissionImage
from gradethread.utils import ensure_output_dir, generate_run_id, media_type_for, to_data_uri

PROJECT_ROOT = Path(__file__).resolve().parent
OUTPUTS = PROJECT_ROOT / "outputs"
FACTOR_COLUMNS = {
    "fabric_condition": "Fabric",
    "structural_integrity": "Structure",
    "cosmetic_appearance": "Cosmetic",
    "functional_elements": "Functional",
    "odor_cleanliness": "Odor",
}


st.set_page_config(page_title="Garment Grading", layout="wide")
st.title("Garment Grading")
st.caption("Photos → Per-image analysis (parallel) → Composite grade (score recomputed) → Grade report")

col_a, col_b = st.columns(2)
with col_a:
    title = st.text_input("Title", placeholder="Levi's 501 Original Fit Jeans, W32 L32")
    garment_type = st.selectbox("Garment type", GARMENT_TYPES)
    category = st.text_input("Category", value="other")
with col_b:
    brand = st.text_input("Brand (optional)")
    description = st.text_area("Description (optional)", height=100)

uploads = st.file_uploader("Photos", type=["jpg", "jpeg", "png", "webp", "gif"], accept_multiple_files=True)
images: list[SubmissionImage] = []
for i, upload in enumerate(uploads or []):
    default_role = IMAGE_ROLES[i] if i < len(IMAGE_ROLES) else "detail"
    role = st.selectbox(f"Role for {upload.name}", IMAGE_ROLES, index=IMAGE_ROLES.index(default_role), key=f"role_{i}")
    images.append(SubmissionImage(image_role=role, image=to_data_uri(upload.getvalue(), media_type_for(upload.name))))

gaps = coverage_gaps(img.image_role for img in images)
if images and gaps:
    st.warning(f"Recommended photos missing: {', '.join(gaps)}")

if st.button("Grade", type="primary") and images and title.strip():
    run_id = generate_run_id()
    out_dir = ensure_output_dir(OUTPUTS, run_id)
    audit_path = out_dir / "audit.jsonl"
    log_event(audit_path, run_id, "input_received", {"images": [img.image_role for img in images], "ui": True})
    garment = GarmentInfo(
        garment_type=garment_type,
        garment_category=category.strip() or "other",
        brand=brand.strip() or None,
        title=title.strip(),
        description=description.strip() or None,
    )

    with st.spinner(f"Analyzing {len(images)} photos and synthesizing the grade…"):
        try:
            outcome = grade_submission(run_id, images, garment, audit_path=audit_path, run_id=run_id)
        except GradingError as e:
            st.error(f"Grading failed: {e}. No grade report was created.")
            st.stop()

    result = outcome.result
    certificate_md = render_certificate(outcome.report, garment)
    (out_dir / "grade_report.json").write_text(outcome.report.model_dump_json(indent=2), encoding="utf-8")
    (out_dir / "certificate.md").write_text(certificate_md, encoding="utf-8")
    log_event(audit_path, run_id, "outputs_written", {})

    st.success(f"Certificate: `{outcome.report.certificate_id}`")
    m1, m2, m3 = st.columns(3)
    m1.metric("Overall score", f"{result.overall_score:.1f}")
    m2.metric("Grade tier", result.grade_tier)
    m3.metric("Confidence", f"{result.confidence_score:.2f}", confidence_band(result.confidence_score))
    if result.needs_human_review:
        st.warning("Flagged for human review (confidence below 0.75).")

    st.subheader("Factor scores")
    st.dataframe([{label: getattr(result.factor_scores, key) for key, label in FACTOR_COLUMNS.items()}], use_container_width=True)

    st.subheader("Defects")
    if result.defects_found:
        st.dataframe([d.model_dump() for d in result.defects_found], use_container_width=True)
    else:
        st.info("No defects")

    st.subheader("Per-image analyses")
    for analysis in outcome.analyses:
        with st.expander(analysis.image_role):
            st.json(analysis.model_dump())

    st.subheader("Certificate")
    st.markdown(certificate_md)
    with st.expander("Audit trail"):
        st.dataframe(
            [{"time": e["timestamp"], "event": e["event_type"], "model": e["model_name"]} for e in read_events(audit_path)],
            use_container_width=True,
        )
    st.caption(f"Outputs in `outputs/{run_id}/`")
