import os
import json
import datetime
import pandas as pd
from fpdf import FPDF


def generate_timeseries_csv(run_dir, samples, series=None):
    """
    Writes the acquisition time series.
    Schema: date, value, status ('valid' | 'excluded')

    With a normalized series the valid rows are the deduplicated, sorted samples;
    without one (no data) the raw provider samples are written as excluded.
    """
    output_path = os.path.join(run_dir, "ndvi_timeseries.csv")

    if series is not None:
        rows = [{**s.to_dict(), "status": "valid"} for s in series.samples]
        rows += [{**s.to_dict(), "status": "excluded"} for s in series.excluded]
    else:
        rows = [{"date": s.get("date"), "value": s.get("value"), "status": "excluded"} for s in samples]

    df = pd.DataFrame(rows, columns=["date", "value", "status"])
    df = df.sort_values(["date", "status"], kind="mergesort")
    df.to_csv(output_path, index=False)
    print(f"[Exports] NDVI time series generated: {output_path}")
    return output_path


def generate_assessment_json(run_dir, assessment):
    """Writes the flat ChangeAssessment record."""
    output_path = os.path.join(run_dir, "change_assessment.json")

    with open(output_path, 'w') as f:
        json.dump(assessment.to_dict(), f, indent=4)
    print(f"[Exports] Change assessment generated: {output_path}")
    return output_path


def generate_aoi_geojson(run_dir, roi_coords, assessment):
    """
    Writes the AOI as a GeoJSON FeatureCollection whose single feature carries
    the assessment as properties, ready for map display.
    """
    output_path = os.path.join(run_dir, "aoi_assessment.geojson")

    geojson_obj = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": roi_coords},
                "properties": assessment.to_dict(),
            }
        ],
    }

    with open(output_path, 'w') as f:
        json.dump(geojson_obj, f)
    print(f"[Exports] AOI assessment (GeoJSON) generated: {output_path}")
    return output_path


def generate_pdf_report(run_dir, run_id, status, assessment, config_snapshot):
    """
    Generates a one-page PDF summary using fpdf2.
    """
    output_path = os.path.join(run_dir, "run_report.pdf")

    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("helvetica", size=12)

    pdf.cell(text="EarthWatch Change Detection Report", new_x="LMARGIN", new_y="NEXT", align='C')
    pdf.cell(text=f"Run ID: {run_id}", new_x="LMARGIN", new_y="NEXT", align='L')
    pdf.cell(text=f"Date: {datetime.datetime.now():%Y-%m-%d %H:%M}", new_x="LMARGIN", new_y="NEXT", align='L')
    pdf.cell(text=f"Status: {status}", new_x="LMARGIN", new_y="NEXT", align='L')

    pdf.ln(10)
    if assessment is not None:
        pdf.cell(text="Change Assessment:", new_x="LMARGIN", new_y="NEXT", align='L')
        for k, v in assessment.to_dict().items():
            pdf.cell(text=f"{k}: {v}", new_x="LMARGIN", new_y="NEXT", align='L')
    else:
        pdf.cell(text="No valid NDVI observations for this area and period.", new_x="LMARGIN", new_y="NEXT", align='L')

    pdf.ln(10)
    pdf.cell(text="Configuration Snapshot:", new_x="LMARGIN", new_y="NEXT", align='L')
    if config_snapshot:
        for k, v in list(config_snapshot.items())[:15]:
            pdf.cell(text=f"{k}: {str(v)[:50]}", new_x="LMARGIN", new_y="NEXT", align='L')

    pdf.output(output_path)
    print(f"[Exports] PDF Report generated: {output_path}")
    return output_path


def generate_all_exports(run_dir, run_id, config_dict, samples, roi_coords, series=None, assessment=None):
    """
    Orchestrator to generate all artifacts.
    The assessment artifacts are only produced when an assessment exists.
    """
    status = "SUCCESS" if assessment is not None else "NO_DATA"

    paths = {}
    paths["ndvi_timeseries"] = generate_timeseries_csv(run_dir, samples, series)
    if assessment is not None:
        paths["change_assessment"] = generate_assessment_json(run_dir, assessment)
        paths["aoi_assessment"] = generate_aoi_geojson(run_dir, roi_coords, assessment)
    paths["pdf_report"] = generate_pdf_report(run_dir, run_id, status, assessment, config_dict)

    return paths
