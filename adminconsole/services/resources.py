"""Resource builders for the admin console backing services.

Every builder is a pure function of the namespace and the deployment
parameters. Names of dependent objects are referenced through the
constants below rather than looked up in the cluster.
"""

from __future__ import annotations

import base64
import re
from typing import Any, Callable

from adminconsole.models import (
    ClusterResourceKey,
    DeploymentParameters,
    ResourceDefinition,
    ResourceKind,
)
from adminconsole.services.errors import IntegrityException

SESSION_SECRET_NAME = "kotsadm-session"
POSTGRES_SECRET_NAME = "kotsadm-postgres"
SHARED_PASSWORD_SECRET_NAME = "kotsadm-password"
MINIO_NAME = "kotsadm-minio"
MINIO_SECRET_NAME = MINIO_NAME
MINIO_CONFIGMAP_NAME = MINIO_NAME
MINIO_SERVICE_NAME = MINIO_NAME
MINIO_STATEFULSET_NAME = MINIO_NAME
MINIO_JOB_NAME = MINIO_NAME

POSTGRES_SERVICE_NAME = "kotsadm-postgres"
POSTGRES_USER = "kotsadm"
POSTGRES_DATABASE = "kotsadm"
MINIO_PORT = 9000

COMMON_LABELS = {"kots.io/kotsadm": "true"}
MINIO_LABELS = {"app": MINIO_NAME}

DNS_LABEL_RE = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

REQUIRED_CREDENTIAL_FIELDS = (
    "session_key",
    "postgres_password",
    "shared_password_bcrypt",
    "s3_access_key",
    "s3_secret_key",
)

# Parameter fields whose values end up in each secret.
SECRET_CREDENTIAL_FIELDS: dict[str, tuple[str, ...]] = {
    SESSION_SECRET_NAME: ("session_key",),
    POSTGRES_SECRET_NAME: ("postgres_password",),
    SHARED_PASSWORD_SECRET_NAME: ("shared_password_bcrypt",),
    MINIO_SECRET_NAME: ("s3_access_key", "s3_secret_key"),
}

# Waits for the object store to come up, then creates the bucket once.
MINIO_INITIALIZE_SCRIPT = """\
#!/bin/sh
set -e

MC_CONFIG_DIR="/tmp/.mc"
MC="/usr/bin/mc --config-dir ${MC_CONFIG_DIR}"

connectToMinio() {
  ATTEMPTS=0 ; LIMIT=29 ;
  set +e ;
  echo "Connecting to Minio server: http://$MINIO_ENDPOINT:$MINIO_PORT" ;
  $MC config host add myminio http://$MINIO_ENDPOINT:$MINIO_PORT $MINIO_ACCESS_KEY $MINIO_SECRET_KEY ;
  $MC ls myminio > /dev/null ;
  STATUS=$? ;
  until [ $STATUS = 0 ]
  do
    ATTEMPTS=`expr $ATTEMPTS + 1` ;
    echo "Failed attempts: $ATTEMPTS" ;
    if [ $ATTEMPTS -gt $LIMIT ]; then
      exit 1 ;
    fi ;
    sleep 2 ;
    $MC config host add myminio http://$MINIO_ENDPOINT:$MINIO_PORT $MINIO_ACCESS_KEY $MINIO_SECRET_KEY ;
    $MC ls myminio > /dev/null ;
    STATUS=$? ;
  done ;
  set -e ;
  return 0
}

checkBucketExists() {
  BUCKET=$1
  CMD=$(${MC} ls myminio/$BUCKET > /dev/null 2>&1)
  return $?
}

createBucket() {
  BUCKET=$1
  if ! checkBucketExists $BUCKET ; then
    echo "Creating bucket $BUCKET"
    ${MC} mb myminio/$BUCKET
  else
    echo "Bucket $BUCKET already exists."
  fi
}

connectToMinio
createBucket $MINIO_BUCKET
"""

Builder = Callable[[str, DeploymentParameters], ResourceDefinition]


def validate_namespace(namespace: str) -> str:
    if not DNS_LABEL_RE.fullmatch(namespace or ""):
        raise IntegrityException(f"namespace {namespace!r} is not a valid DNS label")
    return namespace


def require_complete(params: DeploymentParameters) -> None:
    missing = [name for name in REQUIRED_CREDENTIAL_FIELDS if not getattr(params, name)]
    if missing:
        raise IntegrityException(
            f"Deployment parameters for namespace {params.namespace} are missing: {', '.join(missing)}"
        )


def _metadata(name: str, namespace: str, labels: dict[str, str] | None = None) -> dict[str, Any]:
    merged_labels = dict(COMMON_LABELS)
    if labels:
        merged_labels.update(labels)
    return {"name": name, "namespace": namespace, "labels": merged_labels}


def _encode(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _secret(namespace: str, name: str, document_name: str, data: dict[str, str]) -> ResourceDefinition:
    return _definition(
        ResourceKind.SECRET,
        namespace=namespace,
        name=name,
        document_name=document_name,
        body={
            "metadata": _metadata(name, namespace),
            "type": "Opaque",
            "data": {key: _encode(value) for key, value in data.items()},
        },
    )


def _definition(
    kind: ResourceKind,
    *,
    namespace: str,
    name: str,
    document_name: str,
    body: dict[str, Any],
) -> ResourceDefinition:
    manifest = {"apiVersion": kind.api_version, "kind": kind.value}
    manifest.update(body)
    return ResourceDefinition(
        key=ClusterResourceKey(kind=kind, namespace=namespace, name=name),
        document_name=document_name,
        manifest=manifest,
    )


def _secret_key_ref(key: str) -> dict[str, Any]:
    return {"secretKeyRef": {"name": MINIO_SECRET_NAME, "key": key}}


def postgres_uri(password: str) -> str:
    return (
        f"postgresql://{POSTGRES_USER}:{password}@{POSTGRES_SERVICE_NAME}/{POSTGRES_DATABASE}"
        "?connect_timeout=10&sslmode=disable"
    )


def session_secret(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    return _secret(namespace, SESSION_SECRET_NAME, "secret-jwt.yaml", {"key": params.session_key})


def postgres_secret(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    return _secret(
        namespace,
        POSTGRES_SECRET_NAME,
        "secret-pg.yaml",
        {"uri": postgres_uri(params.postgres_password), "password": params.postgres_password},
    )


def shared_password_secret(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    return _secret(
        namespace,
        SHARED_PASSWORD_SECRET_NAME,
        "secret-shared-password.yaml",
        {"passwordBcrypt": params.shared_password_bcrypt},
    )


def s3_secret(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    return _secret(
        namespace,
        MINIO_SECRET_NAME,
        "secret-s3.yaml",
        {"accesskey": params.s3_access_key, "secretkey": params.s3_secret_key},
    )


def minio_configmap(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    return _definition(
        ResourceKind.CONFIG_MAP,
        namespace=namespace,
        name=MINIO_CONFIGMAP_NAME,
        document_name="minio-configmap.yaml",
        body={
            "metadata": _metadata(MINIO_CONFIGMAP_NAME, namespace, MINIO_LABELS),
            "data": {"initialize": MINIO_INITIALIZE_SCRIPT},
        },
    )


def minio_statefulset(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    container = {
        "name": "kotsadm-minio",
        "image": params.minio_image,
        "imagePullPolicy": "IfNotPresent",
        "command": [
            "/bin/sh",
            "-ce",
            "/usr/bin/docker-entrypoint.sh minio -C /home/minio/.minio/ --quiet server /export",
        ],
        "ports": [{"name": "service", "containerPort": MINIO_PORT, "protocol": "TCP"}],
        "env": [
            {"name": "MINIO_ACCESS_KEY", "valueFrom": _secret_key_ref("accesskey")},
            {"name": "MINIO_SECRET_KEY", "valueFrom": _secret_key_ref("secretkey")},
            {"name": "MINIO_BROWSER", "value": "on"},
        ],
        "volumeMounts": [
            {"name": "kotsadm-minio", "mountPath": "/export"},
            {"name": "minio-config-dir", "mountPath": "/home/minio/.minio/"},
        ],
        "livenessProbe": {
            "httpGet": {"path": "/minio/health/live", "port": "service", "scheme": "HTTP"},
            "initialDelaySeconds": 5,
            "periodSeconds": 30,
            "timeoutSeconds": 1,
            "successThreshold": 1,
            "failureThreshold": 3,
        },
        "readinessProbe": {
            "httpGet": {"path": "/minio/health/ready", "port": "service", "scheme": "HTTP"},
            "initialDelaySeconds": 5,
            "periodSeconds": 15,
            "timeoutSeconds": 1,
            "successThreshold": 1,
            "failureThreshold": 3,
        },
    }
    return _definition(
        ResourceKind.STATEFUL_SET,
        namespace=namespace,
        name=MINIO_STATEFULSET_NAME,
        document_name="minio-statefulset.yaml",
        body={
            "metadata": _metadata(MINIO_STATEFULSET_NAME, namespace, MINIO_LABELS),
            "spec": {
                "serviceName": MINIO_SERVICE_NAME,
                "replicas": 1,
                "selector": {"matchLabels": dict(MINIO_LABELS)},
                "template": {
                    "metadata": {"labels": dict(MINIO_LABELS)},
                    "spec": {
                        "securityContext": {"runAsUser": 1001, "fsGroup": 1001},
                        "containers": [container],
                        "volumes": [{"name": "minio-config-dir", "emptyDir": {}}],
                    },
                },
                "volumeClaimTemplates": [
                    {
                        "metadata": {"name": "kotsadm-minio", "labels": dict(MINIO_LABELS)},
                        "spec": {
                            "accessModes": ["ReadWriteOnce"],
                            "resources": {"requests": {"storage": params.minio_storage_size}},
                        },
                    }
                ],
            },
        },
    )


def minio_service(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    return _definition(
        ResourceKind.SERVICE,
        namespace=namespace,
        name=MINIO_SERVICE_NAME,
        document_name="minio-service.yaml",
        body={
            "metadata": _metadata(MINIO_SERVICE_NAME, namespace, MINIO_LABELS),
            "spec": {
                "type": "ClusterIP",
                "selector": dict(MINIO_LABELS),
                "ports": [
                    {"name": "service", "port": MINIO_PORT, "targetPort": MINIO_PORT, "protocol": "TCP"}
                ],
            },
        },
    )


def minio_job(namespace: str, params: DeploymentParameters) -> ResourceDefinition:
    container = {
        "name": "kotsadm-minio-init",
        "image": params.minio_client_image,
        "imagePullPolicy": "IfNotPresent",
        "command": ["/bin/sh", "/config/initialize"],
        "env": [
            {"name": "MINIO_ENDPOINT", "value": MINIO_SERVICE_NAME},
            {"name": "MINIO_PORT", "value": str(MINIO_PORT)},
            {"name": "MINIO_BUCKET", "value": params.bucket_name},
            {"name": "MINIO_ACCESS_KEY", "valueFrom": _secret_key_ref("accesskey")},
            {"name": "MINIO_SECRET_KEY", "valueFrom": _secret_key_ref("secretkey")},
        ],
        "volumeMounts": [{"name": "minio-configuration", "mountPath": "/config"}],
    }
    return _definition(
        ResourceKind.JOB,
        namespace=namespace,
        name=MINIO_JOB_NAME,
        document_name="minio-job.yaml",
        body={
            "metadata": _metadata(MINIO_JOB_NAME, namespace, MINIO_LABELS),
            "spec": {
                "template": {
                    "metadata": {"labels": dict(MINIO_LABELS)},
                    "spec": {
                        "restartPolicy": "OnFailure",
                        "containers": [container],
                        "volumes": [
                            {
                                "name": "minio-configuration",
                                "configMap": {"name": MINIO_CONFIGMAP_NAME},
                            }
                        ],
                    },
                }
            },
        },
    )


# Creation order: credentials first, then the storage service objects.
SECRET_BUILDERS: tuple[Builder, ...] = (
    session_secret,
    postgres_secret,
    shared_password_secret,
    s3_secret,
)
MINIO_BUILDERS: tuple[Builder, ...] = (
    minio_configmap,
    minio_statefulset,
    minio_service,
    minio_job,
)


def build_all(params: DeploymentParameters) -> list[ResourceDefinition]:
    return [builder(params.namespace, params) for builder in SECRET_BUILDERS + MINIO_BUILDERS]
